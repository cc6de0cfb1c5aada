"""
Async database access for the sales assistant.

Wraps the async engine and session factory in an injectable ``Database``
object so components and tests can each own an isolated store.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .models import Base

logger = logging.getLogger(__name__)

# Failures a caller may treat as "store unreachable"
PERSISTENCE_ERRORS = (SQLAlchemyError, OSError)


def normalize_database_url(database_url: str) -> str:
    """Ensure the URL names an async driver."""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


class Database:
    """Async engine plus session factory."""

    def __init__(
        self,
        database_url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
    ):
        self.url = normalize_database_url(database_url)

        engine_kwargs = {"echo": echo}
        if not self.url.startswith("sqlite"):
            engine_kwargs.update(pool_size=pool_size, max_overflow=max_overflow)

        self.engine = create_async_engine(self.url, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_all(self):
        """Create tables (use migrations in production)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session that commits on success and rolls back on error."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self):
        await self.engine.dispose()
        logger.info("Database connection closed")


async def init_db(database_url: str, pool_size: int = 5, max_overflow: int = 10) -> Database:
    """
    Create a Database and make sure its tables exist.

    Args:
        database_url: SQLAlchemy URL (sqlite or postgresql)
        pool_size: Connection pool size (ignored for sqlite)
        max_overflow: Max overflow connections (ignored for sqlite)
    """
    database = Database(database_url, pool_size=pool_size, max_overflow=max_overflow)
    await database.create_all()
    logger.info("Database initialized")
    return database
