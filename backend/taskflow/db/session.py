"""Async engine and the per-request session dependency."""

from collections.abc import AsyncGenerator
from typing import Annotated

import structlog
from fastapi import Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from taskflow.config import get_settings

logger = structlog.get_logger()
settings = get_settings()

engine = create_async_engine(
    str(settings.database_url),
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    pool_timeout=settings.database_pool_timeout,
    pool_pre_ping=True,
    echo=settings.debug,
)

# expire_on_commit=False: response models read attributes after commit
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def init_db() -> None:
    """Fail fast at startup if the database is unreachable."""
    async with engine.connect() as conn:
        server_version = (await conn.execute(text("SHOW server_version"))).scalar()
    logger.info("database_connected", server_version=server_version)


async def close_db() -> None:
    await engine.dispose()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """One session and one transaction per request.

    ``begin()`` commits when the endpoint returns and rolls back if it
    raises, so a rejected re-parent or time entry leaves nothing behind.
    """
    async with async_session_factory.begin() as session:
        yield session


DBSession = Annotated[AsyncSession, Depends(get_db_session)]
