from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable

from app.schemas.common import canonical_id

logger = logging.getLogger(__name__)

ChatCallback = Callable[[dict[str, Any]], Awaitable[None] | None]


class ChatSubscriberRegistry:
    """In-process observers for chat threads, keyed by query id.

    Only listeners attached to this process are notified; other instances never
    see these events.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, list[ChatCallback]] = defaultdict(list)

    def subscribe(self, query_id: str, callback: ChatCallback) -> Callable[[], None]:
        key = canonical_id(query_id) or ""
        self._subscribers[key].append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._subscribers.pop(key, None)

        return unsubscribe

    async def notify(self, query_id: str, message: dict[str, Any]) -> int:
        key = canonical_id(query_id) or ""
        delivered = 0
        for callback in list(self._subscribers.get(key, ())):
            try:
                result = callback(message)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                logger.warning("Chat subscriber failed for query %s", key, exc_info=True)
        return delivered

    def subscriber_count(self, query_id: str) -> int:
        return len(self._subscribers.get(canonical_id(query_id) or "", ()))
