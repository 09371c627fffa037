from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for API payloads: snake_case attributes, camelCase JSON, both accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class QueryStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DEFERRED = "deferred"
    OTC = "otc"
    WAIVED = "waived"
    RESOLVED = "resolved"
    REQUEST_APPROVED = "request-approved"
    REQUEST_DEFERRAL = "request-deferral"
    REQUEST_OTC = "request-otc"
    PENDING_APPROVAL = "pending-approval"
    WAITING_FOR_APPROVAL = "waiting-for-approval"

    @classmethod
    def _missing_(cls, value):  # type: ignore[override]
        if not isinstance(value, str):
            return None
        cleaned = value.strip().lower().replace("_", "-").replace(" ", "-")
        return cls._value2member_map_.get(cleaned)


class TeamName(str, Enum):
    OPERATIONS = "operations"
    SALES = "sales"
    CREDIT = "credit"

    @classmethod
    def _missing_(cls, value):  # type: ignore[override]
        if not isinstance(value, str):
            return None
        return cls._value2member_map_.get(value.strip().lower())


def normalize_status(value: str | QueryStatus | None) -> QueryStatus | None:
    if value is None:
        return None
    if isinstance(value, QueryStatus):
        return value
    cleaned = str(value).strip()
    if not cleaned:
        return None
    try:
        return QueryStatus(cleaned)
    except ValueError:
        allowed = ", ".join(member.value for member in QueryStatus)
        raise ValueError(f"Invalid status '{cleaned}'. Allowed: {allowed}") from None


def canonical_id(value: str | int | float | None) -> str | None:
    """Render a caller-supplied identifier as a trimmed string.

    Numbers lose a trailing ``.0`` so ``7``, ``7.0`` and ``"7"`` all become ``"7"``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, int):
        return str(value)
    cleaned = str(value).strip()
    return cleaned or None
