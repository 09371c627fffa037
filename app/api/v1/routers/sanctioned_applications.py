from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.db.session import get_db
from app.schemas.sanctioned import (
    SanctionedApplicationListResponse,
    SanctionedApplicationRead,
)
from app.services import sanctioned_cases

router = APIRouter(prefix="/sanctioned-applications", tags=["sanctioned-applications"])


@router.get("", response_model=SanctionedApplicationListResponse)
async def list_sanctioned_applications(
    branches: str | None = Query(None, description="Comma-separated branch names or codes"),
    search: str | None = Query(None, description="Matches application id or customer name"),
    limit: int | None = Query(None, ge=1, le=1000),
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    db: AsyncSession = Depends(get_db),
) -> SanctionedApplicationListResponse:
    branch_list = [item.strip() for item in (branches or "").split(",") if item.strip()]
    records = await sanctioned_cases.list_sanctioned_applications(
        db, ctx, branches=branch_list, search=search, limit=limit
    )
    return SanctionedApplicationListResponse(items=records, count=len(records))


@router.get("/{app_id}", response_model=SanctionedApplicationRead)
async def get_sanctioned_application(
    app_id: str,
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
    db: AsyncSession = Depends(get_db),
) -> SanctionedApplicationRead:
    return await sanctioned_cases.get_sanctioned_application(db, ctx, app_id)
