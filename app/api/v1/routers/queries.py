import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.errors import RequestValidationFailed
from app.core.permissions import PermissionCode
from app.db.session import get_db
from app.schemas.common import normalize_status
from app.schemas.queries import (
    QueryCreate,
    QueryCreateResponse,
    QueryFilters,
    QueryListResponse,
    QueryStatsResponse,
    QueryUpdate,
    QueryUpdateResponse,
)
from app.services import queries as query_service
from app.services import query_resolution
from app.services.query_cache import QueryCache
from app.services.query_numbering import QueryNumberSequence

router = APIRouter(prefix="/queries", tags=["queries"])
logger = logging.getLogger(__name__)


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def build_filters(
    *,
    status_value: str | None,
    team: str | None,
    resolved: bool | None,
    branches: str | None,
    app_no: str | None,
    limit: int | None,
) -> QueryFilters:
    query_status = None
    if status_value and status_value.strip().lower() != "all":
        try:
            query_status = normalize_status(status_value)
        except ValueError as exc:
            raise RequestValidationFailed(str(exc), details={"status": status_value}) from exc
    return QueryFilters(
        status=query_status,
        team=(team or "").strip().lower() or None,
        resolved=resolved,
        branches=_split_csv(branches),
        app_no=(app_no or "").strip() or None,
        limit=limit,
    )


@router.get(
    "",
    response_model=QueryListResponse | QueryStatsResponse,
    summary="List query groups or aggregate sub-query statistics",
)
async def list_queries(
    status_value: str | None = Query(None, alias="status"),
    team: str | None = Query(None),
    resolved: bool | None = Query(None),
    branches: str | None = Query(None, description="Comma-separated branch names or codes"),
    app_no: str | None = Query(None, alias="appNo"),
    stats: bool = Query(False),
    limit: int | None = Query(None, ge=1, le=1000),
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    db: AsyncSession = Depends(get_db),
    cache: QueryCache = Depends(deps.get_query_cache),
) -> QueryListResponse | QueryStatsResponse:
    filters = build_filters(
        status_value=status_value,
        team=team,
        resolved=resolved,
        branches=branches,
        app_no=app_no,
        limit=limit,
    )
    return await query_service.list_queries(db, ctx, filters, cache=cache, stats=stats)


@router.post(
    "",
    response_model=QueryCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Raise one query group per query text (operations only)",
)
async def create_queries(
    payload: QueryCreate,
    caller: deps.CallerContext = Depends(deps.require_permission(PermissionCode.QUERY_CREATE)),
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    db: AsyncSession = Depends(get_db),
    cache: QueryCache = Depends(deps.get_query_cache),
    numbers: QueryNumberSequence = Depends(deps.get_query_numbers),
) -> QueryCreateResponse:
    return await query_service.create_queries(
        db, ctx, caller, payload, cache=cache, numbers=numbers
    )


@router.patch(
    "",
    response_model=QueryUpdateResponse,
    summary="Update or resolve a query group or sub-query",
)
async def update_query(
    payload: QueryUpdate,
    caller: deps.CallerContext = Depends(deps.get_caller),
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    db: AsyncSession = Depends(get_db),
    cache: QueryCache = Depends(deps.get_query_cache),
) -> QueryUpdateResponse:
    return await query_resolution.update_query(db, ctx, caller, payload, cache=cache)
