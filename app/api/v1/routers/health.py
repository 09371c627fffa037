from fastapi import APIRouter, Depends

from app.api import deps
from app.core.health import (
    health_payload,
    live_payload,
    ready_payload,
    status_summary_payload,
)
from app.core.limiter import limiter
from app.services.query_cache import QueryCache

router = APIRouter(tags=["health"])


@router.get("/health/live", summary="Service liveness check")
@limiter.exempt
async def health_live() -> dict:
    return await live_payload()


@router.get("/health/ready", summary="Database, Redis and query cache readiness")
@limiter.exempt
async def health_ready(cache: QueryCache = Depends(deps.get_query_cache)) -> dict:
    return await ready_payload(cache_stats=cache.stats())


@router.get("/health", summary="Backward-compatible readiness check")
@limiter.exempt
async def read_health() -> dict:
    return await health_payload()


@router.get("/status/summary", tags=["status"], summary="Service status summary")
@limiter.exempt
async def status_summary(cache: QueryCache = Depends(deps.get_query_cache)) -> dict:
    return await status_summary_payload(cache_stats=cache.stats())
