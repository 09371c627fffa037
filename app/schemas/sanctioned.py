from datetime import datetime
from uuid import UUID

from app.schemas.common import CamelModel


class SanctionedApplicationRead(CamelModel):
    id: UUID
    app_id: str
    customer_name: str | None = None
    branch: str | None = None
    branch_code: str | None = None
    sanctioned_amount: float | None = None
    loan_type: str | None = None
    sales_exec: str | None = None
    status: str
    created_at: datetime | None = None


class SanctionedApplicationListResponse(CamelModel):
    items: list[SanctionedApplicationRead]
    count: int
