from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any

from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from app.core.logging import get_event_logger
from app.core.settings import settings
from app.utils.redis_client import get_redis_client, redis_key

CHANNEL_PREFIX = "query_updates"
LOG_PREFIX = "query_update_log"
logger = logging.getLogger(__name__)
event_logger = get_event_logger()

_EVENT_FIELDS = (
    "id",
    "appNo",
    "customerName",
    "branch",
    "status",
    "priority",
    "team",
    "markedForTeam",
    "createdAt",
    "submittedBy",
    "sendTo",
    "sendToSales",
    "sendToCredit",
)


def channel_for_org(org_id: str) -> str:
    return redis_key(CHANNEL_PREFIX, org_id)


def log_key_for_org(org_id: str) -> str:
    return redis_key(LOG_PREFIX, org_id)


def build_event(group: dict[str, Any], action: str, **extra: Any) -> dict[str, Any]:
    """Shape a serialized query group into the event dashboards consume."""
    event = {field: group.get(field) for field in _EVENT_FIELDS}
    event["action"] = action
    event.update({key: value for key, value in extra.items() if value is not None})
    return event


def event_matches_team(payload: dict[str, Any], team: str | None) -> bool:
    """Whether a dashboard for ``team`` should react to an event. Operations sees everything."""
    if not team:
        return True
    team = team.strip().lower()
    if team == "operations":
        return True
    marked = str(payload.get("markedForTeam") or payload.get("team") or "").lower()
    if marked == team:
        return True
    send_to = [str(target).lower() for target in payload.get("sendTo") or []]
    if team == "sales":
        return bool(payload.get("sendToSales")) or "sales" in send_to
    if team == "credit":
        return bool(payload.get("sendToCredit")) or "credit" in send_to
    return False


async def publish_query_update(org_id: str, payload: dict[str, Any]) -> None:
    redis = get_redis_client()
    await redis.publish(channel_for_org(org_id), json.dumps(payload, default=str))


async def record_update(org_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    entry = {**payload, "loggedAt": datetime.now(timezone.utc).isoformat()}
    key = log_key_for_org(org_id)
    redis = get_redis_client()
    async with redis.pipeline(transaction=False) as pipe:
        pipe.rpush(key, json.dumps(entry, default=str))
        pipe.ltrim(key, -settings.query_update_log_max_entries, -1)
        await pipe.execute()
    return entry


async def broadcast(org_id: str, payload: dict[str, Any]) -> None:
    """Log the event for pollers, then publish it to live streams. Never raises."""
    extra = {
        "query_id": payload.get("id"),
        "app_no": payload.get("appNo"),
        "action": payload.get("action"),
        "org_id": org_id,
    }
    try:
        await record_update(org_id, payload)
    except (RedisError, OSError) as exc:
        logger.warning("Query update log append failed: %s", exc, extra=extra)
    try:
        await publish_query_update(org_id, payload)
    except (RedisError, OSError) as exc:
        logger.warning("Query update publish failed: %s", exc, extra=extra)
    event_logger.info("query %s", payload.get("action"), extra=extra)


def _parse_logged_at(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


async def recent_updates(org_id: str, since: datetime | None = None) -> list[dict[str, Any]]:
    redis = get_redis_client()
    raw_entries = await redis.lrange(log_key_for_org(org_id), 0, -1)
    if since is not None and since.tzinfo is None:
        since = since.replace(tzinfo=timezone.utc)
    entries: list[dict[str, Any]] = []
    for raw in raw_entries:
        try:
            entry = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Skipping malformed query update log entry")
            continue
        logged_at = _parse_logged_at(entry.get("loggedAt"))
        if since is not None and (logged_at is None or logged_at <= since):
            continue
        entries.append(entry)
    return entries


async def subscribe(channel: str) -> PubSub:
    redis = get_redis_client()
    pubsub = redis.pubsub()
    await pubsub.subscribe(channel)
    return pubsub


async def unsubscribe(pubsub: PubSub, channel: str) -> None:
    try:
        # Redis/network blips should not block app shutdown/reload.
        await asyncio.wait_for(pubsub.unsubscribe(channel), timeout=2.0)
    except (RedisError, TimeoutError, asyncio.TimeoutError) as exc:
        logger.warning("Query update unsubscribe failed: %s", exc)
    finally:
        try:
            await asyncio.wait_for(pubsub.close(), timeout=2.0)
        except (RedisError, TimeoutError, asyncio.TimeoutError) as exc:
            logger.warning("Query update pubsub close failed: %s", exc)
