import logging
from collections.abc import AsyncGenerator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.settings import settings
from app.db.url import normalize_database_url

logger = logging.getLogger(__name__)

engine = create_async_engine(
    normalize_database_url(settings.database_url),
    future=True,
    echo=False,
    pool_pre_ping=True,
)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


async def safe_rollback(db: AsyncSession) -> None:
    """Roll back after a failed statement; a dead connection must not mask the original error."""
    try:
        await db.rollback()
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("Session rollback failed: %s", exc)
