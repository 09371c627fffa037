from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.errors import RequestValidationFailed, StorageUnavailable
from app.core.settings import settings
from app.db.session import safe_rollback
from app.models.chat_message import ChatMessage
from app.models.query_group import QueryGroup, QueryItem
from app.schemas.chat import ChatAppendResponse, ChatMessageCreate, ChatMessageRead
from app.schemas.common import canonical_id
from app.services.chat_subscribers import ChatSubscriberRegistry

logger = logging.getLogger(__name__)


def thread_key(query_id: str | int | float | None) -> str:
    key = canonical_id(query_id)
    if key is None:
        raise RequestValidationFailed("queryId is required")
    return key


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def collapse_duplicates(messages: list[ChatMessage], *, window_seconds: float) -> list[ChatMessage]:
    """Drop messages repeating the same text from the same sender within ``window_seconds``."""
    last_seen: dict[tuple[str, str], datetime] = {}
    kept: list[ChatMessage] = []
    for message in messages:
        key = (message.sender, message.message)
        timestamp = _as_utc(message.timestamp)
        previous = last_seen.get(key)
        if previous is not None and abs((timestamp - previous).total_seconds()) <= window_seconds:
            continue
        last_seen[key] = timestamp
        kept.append(message)
    return kept


async def list_messages(db: AsyncSession, ctx: deps.TenantContext, query_id: str) -> list[ChatMessage]:
    key = thread_key(query_id)
    stmt = (
        select(ChatMessage)
        .where(ChatMessage.org_id == ctx.org_id, func.trim(ChatMessage.query_id) == key)
        .order_by(ChatMessage.timestamp.asc())
    )
    rows = list((await db.execute(stmt)).scalars().all())
    isolated = [row for row in rows if canonical_id(row.query_id) == key]
    if len(isolated) != len(rows):
        logger.warning(
            "Dropped %d chat messages belonging to another thread",
            len(rows) - len(isolated),
            extra={"query_id": key},
        )
    isolated.sort(key=lambda row: _as_utc(row.timestamp))
    return collapse_duplicates(isolated, window_seconds=settings.chat_read_dedupe_window_seconds)


async def _find_duplicate(
    db: AsyncSession,
    ctx: deps.TenantContext,
    key: str,
    payload: ChatMessageCreate,
    idempotency_key: str | None,
    now: datetime,
) -> ChatMessage | None:
    base = select(ChatMessage).where(
        ChatMessage.org_id == ctx.org_id, func.trim(ChatMessage.query_id) == key
    )
    try:
        if idempotency_key:
            stmt = base.where(ChatMessage.idempotency_key == idempotency_key)
            existing = (await db.execute(stmt)).scalars().first()
            if existing is not None:
                return existing
        window_start = now - timedelta(seconds=settings.chat_duplicate_window_seconds)
        stmt = (
            base.where(
                ChatMessage.sender == payload.sender,
                ChatMessage.message == payload.text,
                ChatMessage.timestamp >= window_start,
            )
            .order_by(ChatMessage.timestamp.desc())
            .limit(1)
        )
        return (await db.execute(stmt)).scalars().first()
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Chat duplicate check skipped: %s", exc, extra={"query_id": key})
        await safe_rollback(db)
        return None


async def _mirror_remark(db: AsyncSession, ctx: deps.TenantContext, message: ChatMessage) -> bool:
    """Copy the message into the owning query group's embedded remarks for older views."""
    try:
        stmt = (
            select(QueryGroup)
            .outerjoin(QueryGroup.queries)
            .where(
                QueryGroup.org_id == ctx.org_id,
                or_(QueryGroup.id == message.query_id, QueryItem.id == message.query_id),
            )
        )
        group = (await db.execute(stmt)).scalars().first()
        if group is None:
            return False
        group.remarks = [
            *(group.remarks or []),
            {
                "id": str(message.id),
                "text": message.message,
                "author": message.sender,
                "authorRole": message.sender_role,
                "authorTeam": message.team,
                "timestamp": _as_utc(message.timestamp).isoformat(),
                "isEdited": False,
            },
        ]
        await db.commit()
        return True
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Remark mirror failed: %s", exc, extra={"query_id": message.query_id})
        await safe_rollback(db)
        return False


async def append_message(
    db: AsyncSession,
    ctx: deps.TenantContext,
    query_id: str,
    payload: ChatMessageCreate,
    *,
    subscribers: ChatSubscriberRegistry,
    idempotency_key: str | None = None,
) -> ChatAppendResponse:
    key = thread_key(query_id)
    if payload.query_id is not None and payload.query_id != key:
        raise RequestValidationFailed(
            "Body queryId does not match the chat thread",
            code="QUERY_ID_MISMATCH",
            details={"pathQueryId": key, "bodyQueryId": payload.query_id},
        )
    idempotency_key = (idempotency_key or "").strip() or None
    now = datetime.now(timezone.utc)

    existing = await _find_duplicate(db, ctx, key, payload, idempotency_key, now)
    if existing is not None:
        logger.info("Duplicate chat message suppressed", extra={"query_id": key})
        return ChatAppendResponse(message=ChatMessageRead.model_validate(existing), is_duplicate=True)

    message = ChatMessage(
        id=uuid.uuid4(),
        org_id=ctx.org_id,
        query_id=key,
        message=payload.text,
        response_text=payload.response_text or payload.text,
        sender=payload.sender,
        sender_role=payload.sender_role,
        team=payload.team or payload.sender_role,
        timestamp=now,
        is_system_message=payload.is_system_message,
        action_type=payload.action_type or "message",
        idempotency_key=idempotency_key,
    )
    try:
        db.add(message)
        await db.commit()
    except (SQLAlchemyError, OSError) as exc:
        logger.exception("Chat message write failed", extra={"query_id": key})
        await safe_rollback(db)
        raise StorageUnavailable("Failed to store chat message", details={"queryId": key}) from exc

    read = ChatMessageRead.model_validate(message)
    await _mirror_remark(db, ctx, message)
    await subscribers.notify(key, read.model_dump(mode="json", by_alias=True))
    return ChatAppendResponse(message=read, is_duplicate=False)


async def cleanup_chat_storage(db: AsyncSession, ctx: deps.TenantContext) -> dict[str, int]:
    """Maintenance pass over stored chat messages for one org."""
    removed_orphans = await db.execute(
        delete(ChatMessage).where(
            ChatMessage.org_id == ctx.org_id,
            or_(ChatMessage.query_id.is_(None), func.trim(ChatMessage.query_id) == ""),
        )
    )
    trimmed = await db.execute(
        update(ChatMessage)
        .where(
            ChatMessage.org_id == ctx.org_id,
            ChatMessage.query_id != func.trim(ChatMessage.query_id),
        )
        .values(query_id=func.trim(ChatMessage.query_id))
        .execution_options(synchronize_session=False)
    )

    rows = (
        await db.execute(
            select(ChatMessage)
            .where(ChatMessage.org_id == ctx.org_id)
            .order_by(ChatMessage.timestamp.asc())
        )
    ).scalars().all()
    seen: set[tuple] = set()
    duplicate_ids = []
    for row in rows:
        second = int(_as_utc(row.timestamp).timestamp())
        signature = ((row.query_id or "").strip(), row.sender, row.message, second)
        if signature in seen:
            duplicate_ids.append(row.id)
        else:
            seen.add(signature)
    if duplicate_ids:
        await db.execute(delete(ChatMessage).where(ChatMessage.id.in_(duplicate_ids)))
    await db.commit()

    counts = {
        "removed_without_query_id": removed_orphans.rowcount or 0,
        "trimmed_query_ids": trimmed.rowcount or 0,
        "removed_duplicates": len(duplicate_ids),
        "remaining": len(rows) - len(duplicate_ids),
    }
    logger.info("Chat storage cleanup finished: %s", counts, extra={"org_id": ctx.org_id})
    return counts
