from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.db.session import safe_rollback
from app.models.application import ApplicationRecord
from app.models.sanctioned_application import SanctionedApplication

logger = logging.getLogger(__name__)

_PREFIX_RE = re.compile(r"^([A-Z]+)")

# Known application-number prefixes and the branch that issues them.
PREFIX_DEFAULTS: dict[str, tuple[str, str, str]] = {
    "SNP": ("Rajesh Kumar", "Mumbai Central Branch", "MUM001"),
    "BHR": ("Priya Sharma", "Delhi Main Branch", "DEL001"),
    "BL": ("Amit Singh", "Bangalore IT Branch", "BLR001"),
    "MUM": ("Sunita Patel", "Mumbai West Branch", "MUM002"),
    "DEL": ("Vikram Reddy", "Delhi South Branch", "DEL002"),
    "CHN": ("Deepika Jain", "Chennai Port Branch", "CHN001"),
    "KOL": ("Arjun Verma", "Kolkata Central Branch", "KOL001"),
    "PUN": ("Neha Agarwal", "Pune West Branch", "PUN001"),
}


@dataclass(slots=True)
class ApplicationDetails:
    customer_name: str
    branch: str
    branch_code: str
    application_branch: str
    application_branch_code: str
    source: str


def _details(customer: str, branch: str, code: str, source: str) -> ApplicationDetails:
    return ApplicationDetails(
        customer_name=customer,
        branch=branch,
        branch_code=code,
        application_branch=branch,
        application_branch_code=code,
        source=source,
    )


def details_from_prefix(app_no: str) -> ApplicationDetails | None:
    match = _PREFIX_RE.match(re.sub(r"\s+", "", app_no).upper())
    if not match or match.group(1) not in PREFIX_DEFAULTS:
        return None
    customer, branch, code = PREFIX_DEFAULTS[match.group(1)]
    return _details(customer, branch, code, "prefix")


def placeholder_details(app_no: str) -> ApplicationDetails:
    return _details(f"Customer {app_no}", "Main Branch", "MAIN001", "placeholder")


async def _from_sanctioned(
    db: AsyncSession, ctx: deps.TenantContext, app_no: str
) -> ApplicationDetails | None:
    stmt = select(SanctionedApplication).where(
        SanctionedApplication.org_id == ctx.org_id, SanctionedApplication.app_id == app_no
    )
    record = (await db.execute(stmt)).scalar_one_or_none()
    if not record:
        return None
    branch = record.branch or "Main Branch"
    return _details(
        record.customer_name or f"Customer {app_no}",
        branch,
        record.branch_code or branch,
        "sanctioned",
    )


async def _from_application(
    db: AsyncSession, ctx: deps.TenantContext, app_no: str
) -> ApplicationDetails | None:
    stmt = select(ApplicationRecord).where(
        ApplicationRecord.org_id == ctx.org_id, ApplicationRecord.app_id == app_no
    )
    record = (await db.execute(stmt)).scalar_one_or_none()
    if not record:
        return None
    branch = record.branch or "Main Branch"
    return _details(
        record.customer_name or f"Customer {app_no}",
        branch,
        record.branch_code or branch,
        "application",
    )


async def resolve_application_details(
    db: AsyncSession, ctx: deps.TenantContext, app_no: str
) -> ApplicationDetails:
    """Best-effort customer and branch details for a new query.

    Tries the sanctioned application, then the application record, then the
    application-number prefix table, then a generic placeholder.
    """
    for step in (_from_sanctioned, _from_application):
        try:
            details = await step(db, ctx, app_no)
        except (SQLAlchemyError, OSError) as exc:
            logger.warning(
                "Application lookup %s failed for %s: %s",
                step.__name__,
                app_no,
                exc,
                extra={"app_no": app_no},
            )
            await safe_rollback(db)
            continue
        if details:
            return details
    return details_from_prefix(app_no) or placeholder_details(app_no)
