from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.db.base import Base


class QueryDecisionColumns:
    """Resolution, approval and proposal metadata shared by groups and sub-queries."""

    resolved_at = Column(DateTime(timezone=True), nullable=True)
    resolved_by = Column(String(255), nullable=True)
    resolution_reason = Column(Text, nullable=True)
    resolution_status = Column(String(40), nullable=True)
    approver_comment = Column(Text, nullable=True)
    approved_by = Column(String(255), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    approval_date = Column(DateTime(timezone=True), nullable=True)
    approval_status = Column(String(40), nullable=True)
    proposed_action = Column(String(40), nullable=True)
    proposed_by = Column(String(255), nullable=True)
    proposed_at = Column(DateTime(timezone=True), nullable=True)


class QueryGroup(QueryDecisionColumns, Base):
    __tablename__ = "query_groups"
    __allow_unmapped__ = True
    __table_args__ = (
        Index("ix_query_groups_org_app_no", "org_id", "app_no"),
        Index("ix_query_groups_org_team", "org_id", "marked_for_team"),
    )

    id = Column(String(80), primary_key=True)
    org_id = Column(String, nullable=False, index=True)
    app_no = Column(String(64), nullable=False)
    title = Column(String(255), nullable=False)
    customer_name = Column(String(255), nullable=True)
    case_id = Column(String(64), nullable=True)
    branch = Column(String(255), nullable=True)
    branch_code = Column(String(50), nullable=True)
    application_branch = Column(String(255), nullable=True)
    application_branch_code = Column(String(50), nullable=True)
    assigned_to_branch = Column(String(255), nullable=True)
    status = Column(String(40), nullable=False, default="pending", index=True)
    team = Column(String(20), nullable=False, default="operations")
    marked_for_team = Column(String(20), nullable=False, default="operations")
    send_to = Column(JSONB, nullable=False, default=list)
    send_to_sales = Column(Boolean, nullable=False, default=False)
    send_to_credit = Column(Boolean, nullable=False, default=False)
    priority = Column(String(10), nullable=False, default="medium")
    tat = Column(String(50), nullable=True)
    allow_messaging = Column(Boolean, nullable=False, default=True)
    messages = Column(JSONB, nullable=False, default=list)
    remarks = Column(JSONB, nullable=False, default=list)
    submitted_by = Column(String(255), nullable=True)
    assigned_to = Column(String(255), nullable=True)
    is_resolved = Column(Boolean, nullable=False, default=False)
    is_individual_query = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    last_updated = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    queries = relationship(
        "QueryItem",
        back_populates="group",
        order_by="QueryItem.query_number",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class QueryItem(QueryDecisionColumns, Base):
    __tablename__ = "query_items"
    __allow_unmapped__ = True

    id = Column(String(100), primary_key=True)
    org_id = Column(String, nullable=False, index=True)
    group_id = Column(
        String(80), ForeignKey("query_groups.id", ondelete="CASCADE"), nullable=False, index=True
    )
    text = Column(Text, nullable=False)
    sender = Column(String(255), nullable=True)
    query_number = Column(Integer, nullable=False, index=True)
    status = Column(String(40), nullable=False, default="pending")
    sent_to = Column(JSONB, nullable=False, default=list)
    tat = Column(String(50), nullable=True)
    is_resolved = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_updated = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    group = relationship("QueryGroup", back_populates="queries")
