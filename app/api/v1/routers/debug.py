from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.errors import RequestValidationFailed
from app.db.session import get_db
from app.models.chat_message import ChatMessage
from app.models.query_group import QueryGroup, QueryItem
from app.schemas.chat import ChatMessageRead
from app.schemas.common import canonical_id
from app.services import chat as chat_service

router = APIRouter(tags=["debug"])


def _raw_row(message: ChatMessage) -> dict:
    return {
        "id": str(message.id),
        "queryId": message.query_id,
        "message": message.message,
        "sender": message.sender,
        "senderRole": message.sender_role,
        "timestamp": message.timestamp.isoformat() if message.timestamp else None,
    }


@router.get("/debug-chat-history", summary="Inspect stored chat rows for a query id")
async def debug_chat_history(
    query_id: str | None = Query(None, alias="queryId"),
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    db: AsyncSession = Depends(get_db),
) -> dict:
    key = canonical_id(query_id)
    if key is None:
        raise RequestValidationFailed("queryId is required")

    raw_stmt = (
        select(ChatMessage)
        .where(
            ChatMessage.org_id == ctx.org_id,
            or_(ChatMessage.query_id == key, ChatMessage.query_id.contains(key, autoescape=True)),
        )
        .order_by(ChatMessage.timestamp.asc())
    )
    raw = list((await db.execute(raw_stmt)).scalars().all())
    exact = [row for row in raw if canonical_id(row.query_id) == key]

    group_stmt = (
        select(QueryGroup)
        .outerjoin(QueryGroup.queries)
        .where(
            QueryGroup.org_id == ctx.org_id,
            or_(QueryGroup.id == key, QueryGroup.app_no == key, QueryItem.id == key),
        )
    )
    group = (await db.execute(group_stmt)).scalars().first()

    service_view = await chat_service.list_messages(db, ctx, key)
    return {
        "queryId": key,
        "rawMessages": [_raw_row(row) for row in raw],
        "exactMatches": len(exact),
        "substringMatches": len(raw) - len(exact),
        "serviceView": [
            ChatMessageRead.model_validate(message).model_dump(mode="json", by_alias=True)
            for message in service_view
        ],
        "serviceCount": len(service_view),
        "queryGroupExists": group is not None,
        "queryGroup": (
            {"id": group.id, "appNo": group.app_no, "status": group.status} if group else None
        ),
        "idDiagnostics": {
            "received": query_id,
            "canonical": key,
            "isNumeric": key.isdigit(),
            "length": len(key),
            "hadWhitespace": query_id != key,
        },
    }
