"""Async engine and transactional sessions for the trade store.

Every sync job writes through :meth:`DatabaseManager.get_async_session`, one
short transaction per unit of work (a trade page, a condition, a claim
attempt), so a failing write rolls back only its own unit.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from polymarket_trade_assistant.storage.models import Base

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from polymarket_trade_assistant.config import Settings

logger = logging.getLogger(__name__)

SYNC_POSTGRES_PREFIX = "postgresql://"
ASYNC_POSTGRES_PREFIX = "postgresql+asyncpg://"


def to_async_url(database_url: str) -> str:
    """Point a plain ``postgresql://`` URL at the asyncpg driver."""
    if database_url.startswith(SYNC_POSTGRES_PREFIX):
        return ASYNC_POSTGRES_PREFIX + database_url[len(SYNC_POSTGRES_PREFIX) :]
    return database_url


class DatabaseManager:
    """Owns the async engine shared by the scheduler, the CLI and the sync jobs.

    The engine is created lazily on first use. A manager built with
    :meth:`from_engine` borrows the engine and never disposes it.
    """

    def __init__(
        self,
        database_url: str,
        *,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
    ) -> None:
        self.database_url = to_async_url(database_url)
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._echo = echo

        self._engine: AsyncEngine | None = None
        self._owns_engine = True
        self._session_factory: async_sessionmaker[AsyncSession] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> DatabaseManager:
        return cls(settings.database.url)

    @classmethod
    def from_engine(cls, engine: AsyncEngine) -> DatabaseManager:
        """Borrow an existing engine (in-memory SQLite in tests)."""
        manager = cls(str(engine.url))
        manager._engine = engine
        manager._owns_engine = False
        return manager

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_async_engine(
                self.database_url,
                pool_size=self._pool_size,
                max_overflow=self._max_overflow,
                echo=self._echo,
            )
            self._owns_engine = True
        return self._engine

    @asynccontextmanager
    async def get_async_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session that commits on success and rolls back on error."""
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(bind=self.engine, expire_on_commit=False)

        session = self._session_factory()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    async def create_schema(self) -> None:
        """Create any missing tables; Alembic migrations remain the source of truth."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Trade store schema created")

    async def close(self) -> None:
        """Drop the session factory and dispose the engine if this manager created it."""
        self._session_factory = None
        if self._engine is None or not self._owns_engine:
            return
        engine, self._engine = self._engine, None
        await engine.dispose()
        logger.info("Trade store connections closed")
