from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.errors import NotFound
from app.db.session import safe_rollback
from app.models.query_group import QueryGroup, QueryItem
from app.schemas.queries import QueryUpdate, QueryUpdateResponse
from app.services import query_stream, sanctioned_cases
from app.services.query_cache import QueryCache
from app.services.query_payloads import group_from_payload, group_to_payload, group_to_read
from app.services.query_status import (
    apply_group_transition,
    apply_item_transition,
    is_resolved_status,
    refresh_group_status,
    target_status,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LocatedQuery:
    group: QueryGroup
    item: QueryItem | None
    source: str


def _item_in(group: QueryGroup, item_id: str) -> QueryItem | None:
    return next((item for item in group.queries if item.id == item_id), None)


async def _group_for_item(
    db: AsyncSession, ctx: deps.TenantContext, item_id: str
) -> QueryGroup | None:
    stmt = (
        select(QueryGroup)
        .join(QueryGroup.queries)
        .where(QueryGroup.org_id == ctx.org_id, QueryItem.id == item_id)
    )
    return (await db.execute(stmt)).scalars().first()


async def _group_by_id(
    db: AsyncSession, ctx: deps.TenantContext, group_id: str
) -> QueryGroup | None:
    stmt = select(QueryGroup).where(QueryGroup.org_id == ctx.org_id, QueryGroup.id == group_id)
    return (await db.execute(stmt)).scalars().first()


def _as_individual(group: QueryGroup) -> QueryItem | None:
    """An individual update addressed by group id targets the sole sub-query, if there is one."""
    items = list(group.queries or [])
    return items[0] if len(items) == 1 else None


async def locate_in_database(
    db: AsyncSession, ctx: deps.TenantContext, candidates: list[str], *, individual: bool
) -> LocatedQuery | None:
    async def by_item() -> LocatedQuery | None:
        for candidate in candidates:
            group = await _group_for_item(db, ctx, candidate)
            if group is not None:
                item = _item_in(group, candidate) if individual else None
                return LocatedQuery(group, item, "database")
        return None

    async def by_group() -> LocatedQuery | None:
        for candidate in candidates:
            group = await _group_by_id(db, ctx, candidate)
            if group is not None:
                item = _as_individual(group) if individual else None
                return LocatedQuery(group, item, "database")
        return None

    steps = (by_item, by_group) if individual else (by_group, by_item)
    for step in steps:
        located = await step()
        if located is not None:
            return located
    return None


def locate_in_cache(
    cache: QueryCache, ctx: deps.TenantContext, candidates: list[str], *, individual: bool
) -> LocatedQuery | None:
    def by_item() -> LocatedQuery | None:
        hit = cache.find_item(ctx.org_id, candidates)
        if hit is None:
            return None
        group_payload, item_payload = hit
        group = group_from_payload(ctx.org_id, group_payload)
        item = _item_in(group, item_payload["id"]) if individual else None
        return LocatedQuery(group, item, "cache")

    def by_group() -> LocatedQuery | None:
        group_payload = cache.find_group(ctx.org_id, candidates)
        if group_payload is None:
            return None
        group = group_from_payload(ctx.org_id, group_payload)
        return LocatedQuery(group, _as_individual(group) if individual else None, "cache")

    steps = (by_item, by_group) if individual else (by_group, by_item)
    for step in steps:
        located = step()
        if located is not None:
            return located
    return None


async def update_query(
    db: AsyncSession,
    ctx: deps.TenantContext,
    caller: deps.CallerContext,
    payload: QueryUpdate,
    *,
    cache: QueryCache,
) -> QueryUpdateResponse:
    """Apply a status change or decision metadata to a query group or one of its sub-queries.

    The database is searched first; the in-process cache serves both as fallback
    when the database is unreachable and for queries that were only ever cached.
    """
    candidates = payload.candidate_ids()
    individual = payload.is_individual_query is not False
    extra = {"query_id": payload.query_id, "org_id": ctx.org_id}

    located: LocatedQuery | None = None
    try:
        located = await locate_in_database(db, ctx, candidates, individual=individual)
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Query lookup failed; searching the in-process cache: %s", exc, extra=extra)
        await safe_rollback(db)
    if located is None:
        located = locate_in_cache(cache, ctx, candidates, individual=individual)
    if located is None:
        raise NotFound(
            "Query not found",
            details={"candidates": candidates, "isIndividualQuery": individual},
        )

    group, item = located.group, located.item
    now = datetime.now(timezone.utc)
    if item is not None:
        apply_item_transition(item, payload, now=now)
        refresh_group_status(group, payload, now=now)
    else:
        apply_group_transition(group, payload, now=now)
    if payload.assigned_to:
        group.assigned_to = payload.assigned_to

    # Serialize before committing: a failed commit expires the loaded attributes.
    read = group_to_read(group)
    source = located.source
    if source == "database":
        try:
            await db.commit()
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("Query update not persisted; kept in cache only: %s", exc, extra=extra)
            await safe_rollback(db)
            source = "cache"

    group_payload = group_to_payload(read)
    cache.upsert(ctx.org_id, group_payload)

    status = target_status(payload)
    sub_read = next((q for q in read.queries if item is not None and q.id == item.id), None)
    event_status = status.value if status else (sub_read.status if sub_read else read.status)
    action = "resolved" if is_resolved_status(event_status) else "updated"
    decided = sub_read or read
    await query_stream.broadcast(
        ctx.org_id,
        query_stream.build_event(
            group_payload,
            action,
            status=event_status,
            subQueryId=sub_read.id if sub_read else None,
            resolvedBy=decided.resolved_by,
            resolvedAt=decided.resolved_at.isoformat() if decided.resolved_at else None,
            approverComment=decided.approver_comment,
            approvedBy=decided.approved_by,
            approvedAt=decided.approved_at.isoformat() if decided.approved_at else None,
            approvalStatus=decided.approval_status,
            updatedBy=caller.display_name,
        ),
    )
    logger.info(
        "Query %s %s via %s",
        read.id,
        action,
        source,
        extra={**extra, "app_no": read.app_no, "action": action},
    )

    removed = False
    if is_resolved_status(read.status):
        fallback = [
            group_from_payload(ctx.org_id, cached)
            for cached in cache.groups_for_app(ctx.org_id, read.app_no)
        ]
        removed = await sanctioned_cases.remove_if_fully_resolved(
            db, ctx, read.app_no, fallback_groups=fallback
        )

    return QueryUpdateResponse(
        query=read, sub_query=sub_read, source=source, sanctioned_case_removed=removed
    )
