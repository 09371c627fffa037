from fastapi import APIRouter

from app.api.v1.routers import (
    chat,
    debug,
    health,
    queries,
    query_updates,
    sanctioned_applications,
)
from app.core.settings import settings

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(queries.router)
api_router.include_router(chat.router)
api_router.include_router(sanctioned_applications.router)
api_router.include_router(query_updates.router)
if settings.debug_routes_active:
    api_router.include_router(debug.router)

__all__ = ["api_router"]
