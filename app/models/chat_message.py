import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class ChatMessage(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chat_messages_org_query_ts", "org_id", "query_id", "timestamp"),
        Index("ix_chat_messages_idempotency", "org_id", "query_id", "idempotency_key"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    org_id = Column(String, nullable=False, index=True)
    query_id = Column(String(100), nullable=True)
    message = Column(Text, nullable=False)
    response_text = Column(Text, nullable=True)
    sender = Column(String(255), nullable=False)
    sender_role = Column(String(50), nullable=False)
    team = Column(String(50), nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    is_system_message = Column(Boolean, nullable=False, default=False)
    action_type = Column(String(50), nullable=True)
    idempotency_key = Column(String(100), nullable=True)
