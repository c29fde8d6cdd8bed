"""Async engine and session factory with an explicit lifecycle."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tenant_core.config import Settings

logger = structlog.get_logger()


class Database:
    """Owns the process-wide connection pool.

    Created by the application at startup; nothing connects at import time.

    Usage::

        db = Database(settings)
        db.connect()
        async with db.session() as session:
            ...
        await db.dispose()
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not connected")
        return self._engine

    def connect(self) -> None:
        """Create the engine and session factory."""
        if self._engine is not None:
            return
        self._engine = create_async_engine(
            self._settings.database_url,
            pool_size=self._settings.db_pool_size,
            pool_timeout=self._settings.db_pool_timeout,
            pool_recycle=self._settings.db_pool_recycle,
            pool_pre_ping=True,
            echo=False,
        )
        self._sessionmaker = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )
        logger.info(
            "database_connected",
            host=self._settings.postgres_host,
            db=self._settings.postgres_db,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Open a session from the pool."""
        if self._sessionmaker is None:
            raise RuntimeError("Database not connected")
        async with self._sessionmaker() as session:
            yield session

    async def dispose(self) -> None:
        """Close all pooled connections."""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        logger.info("database_disconnected")
