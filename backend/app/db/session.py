from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings
from app.core.logging import redact_db_url

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict[str, Any]:
    # Pool tuning only applies to server databases; SQLite (tests) keeps defaults.
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_pre_ping": True,  # drop dead connections before handing them out
        "pool_recycle": 300,    # seconds
    }


# asyncpg rejects sslmode/channel_binding, so use the cleaned URL
DATABASE_URL_ASYNC = settings.DATABASE_URL_ASYNC_CLEAN

engine: AsyncEngine = create_async_engine(
    DATABASE_URL_ASYNC,
    echo=False,
    **_engine_options(DATABASE_URL_ASYNC),
)

logger.debug("Database engine configured for %s", redact_db_url(DATABASE_URL_ASYNC))

# autoflush is off: lifecycle writes flush explicitly inside savepoints
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One AsyncSession per request, closed when the request ends."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
