import uuid

from sqlalchemy import Column, DateTime, Numeric, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class SanctionedApplication(Base):
    __tablename__ = "sanctioned_applications"
    __table_args__ = (
        UniqueConstraint("org_id", "app_id", name="uq_sanctioned_applications_org_app"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id = Column(String, nullable=False, index=True)
    app_id = Column(String(64), nullable=False)
    customer_name = Column(String(255), nullable=True)
    branch = Column(String(255), nullable=True)
    branch_code = Column(String(50), nullable=True)
    sanctioned_amount = Column(Numeric(18, 2), nullable=True)
    loan_type = Column(String(100), nullable=True)
    sales_exec = Column(String(255), nullable=True)
    status = Column(String(40), nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
