"""
Async database engine and session factory.

Usage:
    from database.connection import get_async_session

    async with get_async_session() as session:
        result = await session.execute(select(Booking))
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from database.models import Base
from shared.config import get_settings

logger = logging.getLogger(__name__)


def create_engine_from_settings(database_url: str | None = None) -> AsyncEngine:
    """Create the async engine for DATABASE_URL (or an explicit URL)."""
    url = database_url or get_settings().DATABASE_URL
    return create_async_engine(url, pool_pre_ping=True)


engine = create_engine_from_settings()

# expire_on_commit=False keeps loaded rows usable after the session closes
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@asynccontextmanager
async def get_async_session(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncIterator[AsyncSession]:
    """
    Provide a transactional session scope.

    Commits on normal exit and rolls back when the block raises.
    """
    factory = session_factory or AsyncSessionLocal
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_tables(target: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet."""
    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")
