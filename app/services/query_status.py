from __future__ import annotations

from datetime import datetime, timezone

from app.core.errors import QueryTransitionError
from app.models.query_group import QueryGroup, QueryItem
from app.schemas.common import QueryStatus, normalize_status
from app.schemas.queries import QueryUpdate

__all__ = [
    "APPROVAL_STATUSES",
    "RESOLVED_STATUSES",
    "apply_group_transition",
    "apply_item_transition",
    "group_is_fully_resolved",
    "is_resolved_status",
    "normalize_status",
    "refresh_group_status",
    "target_status",
]

RESOLVED_STATUSES = frozenset(
    {
        QueryStatus.APPROVED,
        QueryStatus.DEFERRED,
        QueryStatus.OTC,
        QueryStatus.WAIVED,
        QueryStatus.RESOLVED,
        QueryStatus.REQUEST_APPROVED,
        QueryStatus.REQUEST_DEFERRAL,
        QueryStatus.REQUEST_OTC,
    }
)
# Statuses that represent an approver's decision and therefore stamp approval metadata.
APPROVAL_STATUSES = RESOLVED_STATUSES - {QueryStatus.RESOLVED}


def is_resolved_status(value: str | QueryStatus | None) -> bool:
    try:
        status = normalize_status(value)
    except ValueError:
        return False
    return status in RESOLVED_STATUSES


def group_is_fully_resolved(group: QueryGroup) -> bool:
    items = list(group.queries or [])
    if not items:
        return is_resolved_status(group.status)
    return all(is_resolved_status(item.status) for item in items)


def target_status(update: QueryUpdate) -> QueryStatus | None:
    """The status an update asks for; a bare ``isResolved: true`` means ``resolved``."""
    if update.status is not None:
        return update.status
    if update.is_resolved:
        return QueryStatus.RESOLVED
    return None


def _stamp_decision(record, update: QueryUpdate, status: QueryStatus | None, now: datetime) -> None:
    for field in (
        "resolution_reason",
        "resolution_status",
        "proposed_action",
        "proposed_by",
        "proposed_at",
    ):
        value = getattr(update, field)
        if value is not None:
            setattr(record, field, value)

    comment = update.approver_comment or update.resolution_reason
    if comment:
        record.approver_comment = comment

    if status in RESOLVED_STATUSES:
        record.resolved_at = update.resolved_at or now
        record.resolved_by = update.resolved_by or record.resolved_by
    elif update.resolved_by:
        record.resolved_by = update.resolved_by

    if status in APPROVAL_STATUSES:
        record.approved_by = update.approved_by or update.resolved_by or record.approved_by
        record.approved_at = update.approved_at or update.resolved_at or now
        record.approval_date = update.approval_date or record.approved_at
        record.approval_status = update.approval_status or status.value
    else:
        for field in ("approved_by", "approved_at", "approval_date", "approval_status"):
            value = getattr(update, field)
            if value is not None:
                setattr(record, field, value)


def apply_item_transition(
    item: QueryItem, update: QueryUpdate, *, now: datetime | None = None
) -> None:
    now = now or datetime.now(timezone.utc)
    status = target_status(update)
    if status is not None:
        if is_resolved_status(item.status) and status not in RESOLVED_STATUSES:
            raise QueryTransitionError(
                f"Query {item.id} is already {item.status} and cannot move to {status.value}",
                details={"queryId": item.id, "from": item.status, "to": status.value},
            )
        item.status = status.value
        item.is_resolved = status in RESOLVED_STATUSES
    _stamp_decision(item, update, status, now)
    item.last_updated = now


def refresh_group_status(
    group: QueryGroup, update: QueryUpdate, *, now: datetime | None = None
) -> None:
    """Re-derive the group status after one of its sub-queries changed.

    The group is only elevated once every sub-query is resolved; partial progress
    leaves the group where it was so sibling pending queries stay visible.
    """
    now = now or datetime.now(timezone.utc)
    items = list(group.queries or [])
    if items and group_is_fully_resolved(group):
        status = target_status(update)
        if status not in RESOLVED_STATUSES:
            status = normalize_status(items[-1].status)
        group.status = status.value
        group.is_resolved = True
        _stamp_decision(group, update, status, now)
    elif items and is_resolved_status(group.status):
        group.status = QueryStatus.PENDING.value
        group.is_resolved = False
    group.last_updated = now


def apply_group_transition(
    group: QueryGroup, update: QueryUpdate, *, now: datetime | None = None
) -> None:
    now = now or datetime.now(timezone.utc)
    status = target_status(update)
    if status is not None:
        if status in RESOLVED_STATUSES:
            for item in group.queries or []:
                if not is_resolved_status(item.status):
                    apply_item_transition(item, update, now=now)
            group.is_resolved = True
        else:
            if group_is_fully_resolved(group):
                raise QueryTransitionError(
                    f"Query group {group.id} is fully resolved and cannot move to {status.value}",
                    details={"queryId": group.id, "from": group.status, "to": status.value},
                )
            group.is_resolved = False
        group.status = status.value
    _stamp_decision(group, update, status, now)
    group.last_updated = now
