import asyncio
import logging

from app.core.settings import settings
from app.db.base import Base
from app.db.session import engine
from app import models  # noqa: F401 - register tables on Base.metadata

logger = logging.getLogger(__name__)


async def init_db() -> None:
    """Create missing tables for local development.

    Deployed environments run Alembic migrations instead.
    """
    if not settings.auto_create_tables:
        logger.info("AUTO_CREATE_TABLES disabled; expecting migrations to be applied")
        return
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


if __name__ == "__main__":
    asyncio.run(init_db())
