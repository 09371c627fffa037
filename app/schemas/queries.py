from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import Field, ValidationInfo, field_validator

from app.schemas.common import CamelModel, QueryStatus, canonical_id, normalize_status


class QueryDecisionFields(CamelModel):
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    resolution_reason: str | None = None
    resolution_status: str | None = None
    approver_comment: str | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    approval_date: datetime | None = None
    approval_status: str | None = None
    proposed_action: str | None = None
    proposed_by: str | None = None
    proposed_at: datetime | None = None


class QueryItemRead(QueryDecisionFields):
    id: str
    text: str
    sender: str | None = None
    query_number: int
    status: str = QueryStatus.PENDING.value
    sent_to: list[str] = Field(default_factory=list)
    tat: str | None = None
    is_resolved: bool = False
    created_at: datetime | None = None
    last_updated: datetime | None = None


class QueryGroupRead(QueryDecisionFields):
    id: str
    app_no: str
    title: str
    customer_name: str | None = None
    case_id: str | None = None
    branch: str | None = None
    branch_code: str | None = None
    application_branch: str | None = None
    application_branch_code: str | None = None
    assigned_to_branch: str | None = None
    status: str = QueryStatus.PENDING.value
    team: str = "operations"
    marked_for_team: str = "operations"
    send_to: list[str] = Field(default_factory=list)
    send_to_sales: bool = False
    send_to_credit: bool = False
    priority: str = "medium"
    tat: str | None = None
    allow_messaging: bool = True
    messages: list[dict[str, Any]] = Field(default_factory=list)
    remarks: list[dict[str, Any]] = Field(default_factory=list)
    submitted_by: str | None = None
    assigned_to: str | None = None
    is_resolved: bool = False
    is_individual_query: bool = True
    created_at: datetime | None = None
    submitted_at: datetime | None = None
    last_updated: datetime | None = None
    queries: list[QueryItemRead] = Field(default_factory=list)

    # Populated from the sanctioned application on read, never stored.
    sanctioned_amount: float | None = None
    loan_type: str | None = None
    sales_exec: str | None = None
    is_sanctioned: bool = False


ENRICHMENT_FIELDS = frozenset({"sanctioned_amount", "loan_type", "sales_exec", "is_sanctioned"})


class QueryCreate(CamelModel):
    app_no: str
    queries: list[str]
    send_to: str

    @field_validator("app_no", "send_to")
    @classmethod
    def non_empty(cls, v: str) -> str:
        value = (v or "").strip()
        if not value:
            raise ValueError("Value cannot be empty")
        return value

    @field_validator("queries")
    @classmethod
    def non_empty_texts(cls, v: list[str]) -> list[str]:
        texts = [text.strip() for text in v if isinstance(text, str)]
        if not texts or any(not text for text in texts):
            raise ValueError("At least one non-empty query text is required")
        return texts


class QueryCreateResponse(CamelModel):
    items: list[QueryGroupRead]
    count: int
    persisted: bool


class QueryUpdate(QueryDecisionFields):
    query_id: str
    original_query_id: str | None = None
    is_individual_query: bool | None = None
    status: QueryStatus | None = None
    assigned_to: str | None = None
    is_resolved: bool | None = None

    @field_validator("query_id", "original_query_id", mode="before")
    @classmethod
    def canonical(cls, v, info: ValidationInfo):
        if v is not None and (isinstance(v, bool) or not isinstance(v, (str, int, float))):
            raise ValueError("Identifier must be a string or number")
        value = canonical_id(v)
        if value is None and info.field_name == "query_id":
            raise ValueError("queryId is required")
        return value

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v):
        return normalize_status(v)

    def candidate_ids(self) -> list[str]:
        """Ordered, de-duplicated identifiers to try: the caller's original id first."""
        ordered: list[str] = []
        for value in (self.original_query_id, self.query_id):
            if value and value not in ordered:
                ordered.append(value)
        return ordered


class QueryUpdateResponse(CamelModel):
    query: QueryGroupRead
    sub_query: QueryItemRead | None = None
    source: Literal["database", "cache"]
    sanctioned_case_removed: bool = False


class QueryFilters(CamelModel):
    status: QueryStatus | None = None
    team: str | None = None
    resolved: bool | None = None
    branches: list[str] = Field(default_factory=list)
    app_no: str | None = None
    limit: int | None = None

    def is_empty(self) -> bool:
        return (
            self.status is None
            and self.team is None
            and self.resolved is None
            and not self.branches
            and not self.app_no
            and self.limit is None
        )


class QueryStats(CamelModel):
    total: int = 0
    pending: int = 0
    resolved: int = 0
    urgent: int = 0
    todays_queries: int = 0


class QueryListResponse(CamelModel):
    items: list[QueryGroupRead]
    count: int
    filters: QueryFilters
    source: Literal["database", "cache"] = "database"


class QueryStatsResponse(CamelModel):
    stats: QueryStats
    filters: QueryFilters
    source: Literal["database", "cache"] = "database"
