from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.errors import NotFound
from app.db.session import safe_rollback
from app.models.query_group import QueryGroup
from app.models.sanctioned_application import SanctionedApplication
from app.services import query_stream
from app.services.query_status import group_is_fully_resolved, is_resolved_status

logger = logging.getLogger(__name__)

CLEANUP_ACTOR = "System - Auto Cleanup"


def groups_fully_resolved(groups: list[QueryGroup]) -> bool:
    """True when every group for an application, and every sub-query within it, is resolved."""
    if not groups:
        return False
    return all(
        is_resolved_status(group.status) and group_is_fully_resolved(group) for group in groups
    )


async def _load_groups(db: AsyncSession, ctx: deps.TenantContext, app_no: str) -> list[QueryGroup]:
    stmt = select(QueryGroup).where(QueryGroup.org_id == ctx.org_id, QueryGroup.app_no == app_no)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def remove_if_fully_resolved(
    db: AsyncSession,
    ctx: deps.TenantContext,
    app_no: str,
    *,
    fallback_groups: list[QueryGroup] | None = None,
) -> bool:
    """Delete the sanctioned application for ``app_no`` once all of its queries are resolved.

    Returns whether a row was removed. Failures are logged, never raised.
    """
    extra = {"app_no": app_no, "org_id": ctx.org_id}
    try:
        groups = await _load_groups(db, ctx, app_no)
    except (SQLAlchemyError, OSError) as exc:
        await safe_rollback(db)
        if fallback_groups is None:
            logger.warning("Sanctioned cleanup skipped; query lookup failed: %s", exc, extra=extra)
            return False
        logger.warning("Sanctioned cleanup using cached queries: %s", exc, extra=extra)
        groups = fallback_groups

    if not groups_fully_resolved(groups):
        return False

    try:
        result = await db.execute(
            delete(SanctionedApplication).where(
                SanctionedApplication.org_id == ctx.org_id,
                SanctionedApplication.app_id == app_no,
            )
        )
        await db.commit()
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Sanctioned application delete failed: %s", exc, extra=extra)
        await safe_rollback(db)
        return False

    if not result.rowcount:
        return False

    logger.info("Removed sanctioned application after all queries resolved", extra=extra)
    first = groups[0]
    await query_stream.broadcast(
        ctx.org_id,
        {
            "id": f"sanctioned-{app_no}",
            "appNo": app_no,
            "customerName": first.customer_name or "Unknown",
            "branch": first.branch or "Unknown",
            "status": "sanctioned_case_removed",
            "priority": "high",
            "team": "Operations",
            "markedForTeam": "operations",
            "createdAt": datetime.now(timezone.utc).isoformat(),
            "submittedBy": CLEANUP_ACTOR,
            "action": "sanctioned_case_removed",
        },
    )
    return True


async def list_sanctioned_applications(
    db: AsyncSession,
    ctx: deps.TenantContext,
    *,
    branches: list[str] | None = None,
    search: str | None = None,
    limit: int | None = None,
) -> list[SanctionedApplication]:
    stmt = select(SanctionedApplication).where(SanctionedApplication.org_id == ctx.org_id)
    if branches:
        lowered = [branch.lower() for branch in branches]
        stmt = stmt.where(
            or_(
                SanctionedApplication.branch.in_(branches),
                SanctionedApplication.branch_code.in_(branches),
                func.lower(SanctionedApplication.branch).in_(lowered),
            )
        )
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(
            or_(
                SanctionedApplication.app_id.ilike(pattern),
                SanctionedApplication.customer_name.ilike(pattern),
            )
        )
    stmt = stmt.order_by(SanctionedApplication.created_at.desc())
    if limit:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_sanctioned_application(
    db: AsyncSession, ctx: deps.TenantContext, app_id: str
) -> SanctionedApplication:
    stmt = select(SanctionedApplication).where(
        SanctionedApplication.org_id == ctx.org_id, SanctionedApplication.app_id == app_id.strip()
    )
    record = (await db.execute(stmt)).scalar_one_or_none()
    if not record:
        raise NotFound(f"Sanctioned application {app_id} not found", details={"appId": app_id})
    return record
