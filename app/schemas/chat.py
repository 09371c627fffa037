from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import field_validator, model_validator

from app.schemas.common import CamelModel, canonical_id


class ChatMessageCreate(CamelModel):
    message: str | None = None
    remark: str | None = None
    response_text: str | None = None
    sender: str | None = None
    sender_role: str | None = None
    team: str | None = None
    query_id: str | None = None
    is_system_message: bool = False
    action_type: str | None = None

    @field_validator("query_id", mode="before")
    @classmethod
    def canonical(cls, v):
        if isinstance(v, bool):
            raise ValueError("queryId must be a string or number")
        return canonical_id(v)

    @field_validator("message", "remark", "sender", "sender_role", "team")
    @classmethod
    def strip_opt(cls, v: str | None) -> str | None:
        if isinstance(v, str):
            v = v.strip()
        return v or None

    @model_validator(mode="after")
    def required_fields(self) -> "ChatMessageCreate":
        missing = [
            name
            for name, value in (
                ("message", self.text),
                ("sender", self.sender),
                ("senderRole", self.sender_role),
            )
            if not value
        ]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")
        return self

    @property
    def text(self) -> str | None:
        return self.remark or self.message


class ChatMessageRead(CamelModel):
    id: UUID | str
    query_id: str | None = None
    message: str
    response_text: str | None = None
    sender: str
    sender_role: str
    team: str | None = None
    timestamp: datetime | None = None
    is_system_message: bool = False
    action_type: str | None = None


class ChatThreadResponse(CamelModel):
    query_id: str
    messages: list[ChatMessageRead]
    count: int


class ChatAppendResponse(CamelModel):
    message: ChatMessageRead
    is_duplicate: bool = False
