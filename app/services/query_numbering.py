from __future__ import annotations

import asyncio
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import safe_rollback
from app.models.query_group import QueryItem

logger = logging.getLogger(__name__)


class QueryNumberSequence:
    """Allocates query numbers that keep increasing across restarts.

    Each allocation re-reads the persisted maximum, so numbers stay unique within a
    process; two processes allocating at the same moment can still collide.
    """

    def __init__(self, start: int = 0) -> None:
        self._last = start
        self._lock = asyncio.Lock()

    @property
    def last(self) -> int:
        return self._last

    async def _persisted_max(self, db: AsyncSession) -> int:
        try:
            result = await db.execute(select(func.max(QueryItem.query_number)))
            return int(result.scalar_one_or_none() or 0)
        except (SQLAlchemyError, OSError) as exc:
            logger.warning("Query number seed lookup failed; using in-memory counter: %s", exc)
            await safe_rollback(db)
            return 0

    async def next(self, db: AsyncSession) -> int:
        async with self._lock:
            self._last = max(self._last, await self._persisted_max(db)) + 1
            return self._last
