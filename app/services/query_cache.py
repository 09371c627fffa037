from __future__ import annotations

import copy
import logging
from collections import OrderedDict
from typing import Any, Iterable

from app.schemas.common import canonical_id

logger = logging.getLogger(__name__)

Payload = dict[str, Any]


def ids_match(stored: Any, candidate: Any) -> bool:
    """Compare identifiers the way callers send them: ``"7"``, ``7`` and ``7.0`` are equal."""
    left, right = canonical_id(stored), canonical_id(candidate)
    if left is None or right is None:
        return False
    if left == right:
        return True
    try:
        return float(left) == float(right)
    except ValueError:
        return False


class QueryCache:
    """Per-process fallback copy of serialized query groups.

    Entries are keyed by ``(org_id, group_id)`` and evicted least-recently-written
    first once ``max_entries`` is exceeded. Readers always get deep copies.
    """

    def __init__(self, max_entries: int = 5000) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._entries: OrderedDict[tuple[str, str], Payload] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def _org_entries(self, org_id: str) -> Iterable[Payload]:
        return [group for (org, _), group in self._entries.items() if org == org_id]

    def upsert(self, org_id: str, group: Payload) -> None:
        key = (org_id, str(group["id"]))
        self._entries.pop(key, None)
        self._entries[key] = copy.deepcopy(group)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Query cache evicted %s", evicted)

    def refresh_org(self, org_id: str, groups: Iterable[Payload]) -> None:
        """Overwrite entries with freshly read database rows.

        Groups that only live in the cache (a failed write) are kept.
        """
        for group in groups:
            self.upsert(org_id, group)

    def list(self, org_id: str) -> list[Payload]:
        return [copy.deepcopy(group) for group in self._org_entries(org_id)]

    def groups_for_app(self, org_id: str, app_no: str) -> list[Payload]:
        return [
            copy.deepcopy(group)
            for group in self._org_entries(org_id)
            if group.get("appNo") == app_no
        ]

    def find_group(self, org_id: str, candidates: Iterable[Any]) -> Payload | None:
        groups = self._org_entries(org_id)
        for candidate in candidates:
            for group in groups:
                if ids_match(group.get("id"), candidate):
                    return copy.deepcopy(group)
        return None

    def find_item(self, org_id: str, candidates: Iterable[Any]) -> tuple[Payload, Payload] | None:
        """Return ``(group, sub_query)`` for the first candidate matching a sub-query id."""
        groups = self._org_entries(org_id)
        for candidate in candidates:
            for group in groups:
                for item in group.get("queries") or []:
                    if ids_match(item.get("id"), candidate):
                        group_copy = copy.deepcopy(group)
                        item_copy = next(
                            q for q in group_copy["queries"] if q.get("id") == item.get("id")
                        )
                        return group_copy, item_copy
        return None

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, int]:
        return {"entries": len(self._entries), "max_entries": self.max_entries}
