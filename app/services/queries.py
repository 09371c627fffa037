from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.settings import settings
from app.db.session import safe_rollback
from app.models.query_group import QueryGroup, QueryItem
from app.models.sanctioned_application import SanctionedApplication
from app.schemas.common import QueryStatus, TeamName
from app.schemas.queries import (
    QueryCreate,
    QueryCreateResponse,
    QueryFilters,
    QueryGroupRead,
    QueryListResponse,
    QueryStats,
    QueryStatsResponse,
)
from app.services import query_stream
from app.services.application_lookup import ApplicationDetails, resolve_application_details
from app.services.query_cache import QueryCache
from app.services.query_numbering import QueryNumberSequence
from app.services.query_payloads import group_to_payload, group_to_read
from app.services.query_status import RESOLVED_STATUSES, is_resolved_status

logger = logging.getLogger(__name__)

_RESOLVED_VALUES = sorted(status.value for status in RESOLVED_STATUSES)
_BRANCH_FIELDS = (
    "branch",
    "branch_code",
    "assigned_to_branch",
    "application_branch",
    "application_branch_code",
)


def routing_for(send_to: str) -> tuple[str, bool, bool]:
    """Map the requested target to ``(team, send_to_sales, send_to_credit)``."""
    target = send_to.strip().lower()
    if target == TeamName.SALES.value:
        return TeamName.SALES.value, True, False
    if target == TeamName.CREDIT.value:
        return TeamName.CREDIT.value, False, True
    return TeamName.OPERATIONS.value, False, False


def _build_group(
    *,
    ctx: deps.TenantContext,
    payload: QueryCreate,
    text: str,
    index: int,
    number: int,
    details: ApplicationDetails,
    submitter: str,
    now: datetime,
) -> QueryGroup:
    base_id = uuid.uuid4()
    team, send_to_sales, send_to_credit = routing_for(payload.send_to)
    tat = settings.default_query_tat
    group = QueryGroup(
        id=f"{base_id}-{index}",
        org_id=ctx.org_id,
        app_no=payload.app_no,
        title=f"Query {number} - {payload.app_no}",
        customer_name=details.customer_name,
        case_id=payload.app_no,
        branch=details.branch,
        branch_code=details.branch_code,
        application_branch=details.application_branch,
        application_branch_code=details.application_branch_code,
        assigned_to_branch=details.branch,
        status=QueryStatus.PENDING.value,
        team=team,
        marked_for_team=team,
        send_to=[payload.send_to],
        send_to_sales=send_to_sales,
        send_to_credit=send_to_credit,
        priority="medium",
        tat=tat,
        allow_messaging=True,
        messages=[
            {"sender": submitter, "text": text, "timestamp": now.isoformat(), "isSent": True}
        ],
        remarks=[],
        submitted_by=submitter,
        is_resolved=False,
        is_individual_query=True,
        created_at=now,
        submitted_at=now,
        last_updated=now,
    )
    group.queries = [
        QueryItem(
            id=f"{base_id}-query-{index}",
            org_id=ctx.org_id,
            text=text,
            sender=submitter,
            query_number=number,
            status=QueryStatus.PENDING.value,
            sent_to=[payload.send_to],
            tat=tat,
            is_resolved=False,
            created_at=now,
            last_updated=now,
        )
    ]
    return group


async def create_queries(
    db: AsyncSession,
    ctx: deps.TenantContext,
    caller: deps.CallerContext,
    payload: QueryCreate,
    *,
    cache: QueryCache,
    numbers: QueryNumberSequence,
) -> QueryCreateResponse:
    now = datetime.now(timezone.utc)
    details = await resolve_application_details(db, ctx, payload.app_no)
    submitter = caller.display_name

    groups: list[QueryGroup] = []
    for index, text in enumerate(payload.queries):
        number = await numbers.next(db)
        groups.append(
            _build_group(
                ctx=ctx,
                payload=payload,
                text=text,
                index=index,
                number=number,
                details=details,
                submitter=submitter,
                now=now,
            )
        )

    persisted = True
    try:
        for group in groups:
            db.add(group)
        await db.commit()
    except (SQLAlchemyError, OSError) as exc:
        persisted = False
        logger.warning(
            "Query persistence failed; keeping %d queries in the in-process cache: %s",
            len(groups),
            exc,
            extra={"app_no": payload.app_no},
        )
        await safe_rollback(db)

    reads = [group_to_read(group) for group in groups]
    for read in reads:
        group_payload = group_to_payload(read)
        cache.upsert(ctx.org_id, group_payload)
        await query_stream.broadcast(
            ctx.org_id,
            query_stream.build_event(
                group_payload, "created", queryText=read.queries[0].text if read.queries else None
            ),
        )
    logger.info(
        "Created %d queries for %s (persisted=%s)",
        len(reads),
        payload.app_no,
        persisted,
        extra={"app_no": payload.app_no},
    )
    return QueryCreateResponse(items=reads, count=len(reads), persisted=persisted)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _team_clause(team: str):
    clauses = [QueryGroup.marked_for_team == team, QueryGroup.team == team]
    if team == TeamName.SALES.value:
        clauses += [QueryGroup.send_to_sales.is_(True), QueryGroup.send_to.contains(["Sales"])]
    elif team == TeamName.CREDIT.value:
        clauses += [QueryGroup.send_to_credit.is_(True), QueryGroup.send_to.contains(["Credit"])]
    return or_(*clauses)


def _branch_clause(branches: list[str]):
    lowered = [branch.lower() for branch in branches]
    clauses = []
    for name in _BRANCH_FIELDS:
        column = getattr(QueryGroup, name)
        clauses.append(column.in_(branches))
        clauses.append(func.lower(column).in_(lowered))
    clauses.append(QueryGroup.branch_code.is_(None))
    return or_(*clauses)


def build_list_statement(ctx: deps.TenantContext, filters: QueryFilters):
    stmt = select(QueryGroup).where(QueryGroup.org_id == ctx.org_id)
    if filters.team:
        stmt = stmt.where(_team_clause(filters.team))
    if filters.status is not None:
        stmt = stmt.where(QueryGroup.status == filters.status.value)
    if filters.resolved:
        stmt = stmt.where(QueryGroup.status.in_(_RESOLVED_VALUES))
    if filters.app_no:
        stmt = stmt.where(QueryGroup.app_no.ilike(f"%{_escape_like(filters.app_no)}%", escape="\\"))
    if filters.branches:
        stmt = stmt.where(_branch_clause(filters.branches))
    stmt = stmt.order_by(QueryGroup.created_at.desc())
    if filters.limit:
        stmt = stmt.limit(filters.limit)
    return stmt


def matches_filters(group: dict[str, Any], filters: QueryFilters) -> bool:
    """In-memory twin of ``build_list_statement`` for cached query payloads."""
    if filters.status is not None and group.get("status") != filters.status.value:
        return False
    if filters.resolved and group.get("status") not in _RESOLVED_VALUES:
        return False
    if filters.team:
        team = filters.team
        send_to = group.get("sendTo") or []
        team_matches = group.get("markedForTeam") == team or group.get("team") == team
        if team == TeamName.SALES.value:
            team_matches = team_matches or bool(group.get("sendToSales")) or "Sales" in send_to
        elif team == TeamName.CREDIT.value:
            team_matches = team_matches or bool(group.get("sendToCredit")) or "Credit" in send_to
        if not team_matches:
            return False
    if filters.app_no and filters.app_no.lower() not in str(group.get("appNo") or "").lower():
        return False
    if filters.branches and group.get("branchCode") is not None:
        wanted = {branch.lower() for branch in filters.branches}
        values = [
            group.get(key)
            for key in (
                "branch",
                "branchCode",
                "assignedToBranch",
                "applicationBranch",
                "applicationBranchCode",
            )
        ]
        if not any(isinstance(value, str) and value.lower() in wanted for value in values):
            return False
    return True


def _sort_key(read: QueryGroupRead) -> datetime:
    created = read.created_at or datetime.min.replace(tzinfo=timezone.utc)
    return created if created.tzinfo else created.replace(tzinfo=timezone.utc)


def compute_stats(groups: list[QueryGroupRead], *, today=None) -> QueryStats:
    """Count pending/resolved per sub-query; urgent and today's counts stay per group."""
    today = today or datetime.now(timezone.utc).date()
    stats = QueryStats()
    for group in groups:
        statuses = [item.status or group.status for item in group.queries] or [group.status]
        for value in statuses:
            stats.total += 1
            if is_resolved_status(value):
                stats.resolved += 1
            elif value == QueryStatus.PENDING.value:
                stats.pending += 1
        if group.priority == "high":
            stats.urgent += 1
        if group.created_at and group.created_at.date() == today:
            stats.todays_queries += 1
    return stats


async def _enrich_with_sanctioned(
    db: AsyncSession, ctx: deps.TenantContext, groups: list[QueryGroupRead]
) -> None:
    app_nos = sorted({group.app_no for group in groups})
    if not app_nos:
        return
    try:
        result = await db.execute(
            select(SanctionedApplication).where(
                SanctionedApplication.org_id == ctx.org_id,
                SanctionedApplication.app_id.in_(app_nos),
            )
        )
        sanctioned = {record.app_id: record for record in result.scalars().all()}
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Sanctioned enrichment skipped: %s", exc)
        await safe_rollback(db)
        return
    for group in groups:
        record = sanctioned.get(group.app_no)
        if not record:
            continue
        group.customer_name = record.customer_name or group.customer_name
        group.branch = record.branch or group.branch
        group.branch_code = record.branch_code or record.branch or group.branch_code
        group.sanctioned_amount = (
            float(record.sanctioned_amount) if record.sanctioned_amount is not None else None
        )
        group.loan_type = record.loan_type
        group.sales_exec = record.sales_exec
        group.is_sanctioned = True


async def list_queries(
    db: AsyncSession,
    ctx: deps.TenantContext,
    filters: QueryFilters,
    *,
    cache: QueryCache,
    stats: bool = False,
) -> QueryListResponse | QueryStatsResponse:
    source = "database"
    try:
        result = await db.execute(build_list_statement(ctx, filters))
        reads = [group_to_read(group) for group in result.scalars().all()]
        if filters.is_empty():
            cache.refresh_org(ctx.org_id, [group_to_payload(read) for read in reads])
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Query listing fell back to the in-process cache: %s", exc)
        await safe_rollback(db)
        source = "cache"
        reads = [
            QueryGroupRead.model_validate(group)
            for group in cache.list(ctx.org_id)
            if matches_filters(group, filters)
        ]
        reads.sort(key=_sort_key, reverse=True)
        if filters.limit:
            reads = reads[: filters.limit]

    await _enrich_with_sanctioned(db, ctx, reads)

    if stats:
        return QueryStatsResponse(stats=compute_stats(reads), filters=filters, source=source)
    return QueryListResponse(items=reads, count=len(reads), filters=filters, source=source)
