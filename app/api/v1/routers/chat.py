import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Header
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.db.session import get_db
from app.schemas.chat import (
    ChatAppendResponse,
    ChatMessageCreate,
    ChatMessageRead,
    ChatThreadResponse,
)
from app.services import chat as chat_service
from app.services.chat_subscribers import ChatSubscriberRegistry

router = APIRouter(prefix="/queries", tags=["chat"])
logger = logging.getLogger(__name__)

STREAM_QUEUE_SIZE = 100


@router.get(
    "/{query_id}/chat",
    response_model=ChatThreadResponse,
    summary="Chat history for one query thread",
)
async def read_chat(
    query_id: str,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    db: AsyncSession = Depends(get_db),
) -> ChatThreadResponse:
    key = chat_service.thread_key(query_id)
    messages = await chat_service.list_messages(db, ctx, key)
    return ChatThreadResponse(
        query_id=key,
        messages=[ChatMessageRead.model_validate(message) for message in messages],
        count=len(messages),
    )


@router.post(
    "/{query_id}/chat",
    response_model=ChatAppendResponse,
    summary="Append a message to a query thread",
)
async def append_chat(
    query_id: str,
    payload: ChatMessageCreate,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    db: AsyncSession = Depends(get_db),
    subscribers: ChatSubscriberRegistry = Depends(deps.get_chat_subscribers),
) -> ChatAppendResponse:
    return await chat_service.append_message(
        db,
        ctx,
        query_id,
        payload,
        subscribers=subscribers,
        idempotency_key=idempotency_key,
    )


@router.get(
    "/{query_id}/chat/stream",
    summary="Stream new messages for one query thread (SSE)",
)
async def stream_chat(
    query_id: str,
    subscribers: ChatSubscriberRegistry = Depends(deps.get_chat_subscribers),
):
    key = chat_service.thread_key(query_id)
    queue: asyncio.Queue = asyncio.Queue(maxsize=STREAM_QUEUE_SIZE)

    def enqueue(message: dict) -> None:
        try:
            queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Chat stream backlog full; dropping message", extra={"query_id": key})

    unsubscribe = subscribers.subscribe(key, enqueue)

    async def event_generator():
        try:
            yield ": connected\n\n"
            while True:
                try:
                    message = await asyncio.wait_for(queue.get(), timeout=15.0)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield "event: chat.message\n"
                yield f"data: {json.dumps(message, default=str)}\n\n"
        finally:
            unsubscribe()

    headers = {"Cache-Control": "no-cache", "Connection": "keep-alive"}
    return StreamingResponse(event_generator(), media_type="text/event-stream", headers=headers)
