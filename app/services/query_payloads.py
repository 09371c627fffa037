from __future__ import annotations

from typing import Any

from app.models.query_group import QueryGroup, QueryItem
from app.schemas.queries import ENRICHMENT_FIELDS, QueryGroupRead


def group_to_read(group: QueryGroup) -> QueryGroupRead:
    return QueryGroupRead.model_validate(group)


def group_to_payload(group: QueryGroup | QueryGroupRead) -> dict[str, Any]:
    """Serialize a group the way it is cached and broadcast (camelCase, JSON types)."""
    read = group if isinstance(group, QueryGroupRead) else group_to_read(group)
    return read.model_dump(mode="json", by_alias=True, exclude=set(ENRICHMENT_FIELDS))


def group_from_payload(org_id: str, payload: dict[str, Any]) -> QueryGroup:
    """Rebuild a detached ``QueryGroup`` from a cached payload so status rules apply unchanged."""
    read = QueryGroupRead.model_validate(payload)
    data = read.model_dump(exclude={"queries", *ENRICHMENT_FIELDS})
    group = QueryGroup(org_id=org_id, **data)
    group.queries = [
        QueryItem(org_id=org_id, group_id=read.id, **item.model_dump()) for item in read.queries
    ]
    return group
