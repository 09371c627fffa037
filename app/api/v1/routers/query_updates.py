import asyncio
import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from redis.exceptions import RedisError

from app.api import deps
from app.core.errors import ServiceUnavailable
from app.services import query_stream

router = APIRouter(prefix="/query-updates", tags=["query-updates"])
logger = logging.getLogger(__name__)


@router.get("", summary="Poll query updates logged since a timestamp")
async def poll_query_updates(
    since: datetime | None = Query(None),
    team: str | None = Query(None),
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
) -> dict:
    try:
        entries = await query_stream.recent_updates(ctx.org_id, since)
    except (RedisError, OSError) as exc:
        logger.warning("Query update log unavailable: %s", exc)
        raise ServiceUnavailable("Query update log is unavailable") from exc
    updates = [entry for entry in entries if query_stream.event_matches_team(entry, team)]
    return {
        "updates": updates,
        "count": len(updates),
        "serverTime": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/stream", summary="Stream query changes for a team dashboard (SSE)")
async def stream_query_updates(
    team: str | None = Query(None),
    ctx: deps.TenantContext = Depends(deps.get_tenant_context),
):
    channel = query_stream.channel_for_org(ctx.org_id)
    try:
        pubsub = await query_stream.subscribe(channel)
    except (RedisError, OSError) as exc:
        logger.warning("Query update stream unavailable: %s", exc)
        raise ServiceUnavailable("Query update stream is unavailable") from exc

    async def event_generator():
        try:
            yield ": connected\n\n"
            while True:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=15.0)
                if message and message.get("data"):
                    try:
                        payload = json.loads(message["data"])
                    except (TypeError, ValueError):
                        logger.warning("Skipping malformed query update message")
                        continue
                    if query_stream.event_matches_team(payload, team):
                        yield f"event: query.{payload.get('action', 'updated')}\n"
                        yield f"data: {json.dumps(payload)}\n\n"
                else:
                    yield ": keep-alive\n\n"
                await asyncio.sleep(0)
        finally:
            await query_stream.unsubscribe(pubsub, channel)

    headers = {"Cache-Control": "no-cache", "Connection": "keep-alive"}
    return StreamingResponse(event_generator(), media_type="text/event-stream", headers=headers)
