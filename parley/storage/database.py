"""
Async database engine and session factory.

Wraps SQLAlchemy's asyncio extension. ``Database`` follows the same
initialize/shutdown lifecycle as the other long-lived components and can be
used as an async context manager.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from parley.config.logging import get_logger
from parley.config.settings import DatabaseSettings
from parley.storage.models import Base

logger = get_logger(__name__)


class Database:
    """
    Owns the async engine and hands out sessions.

    In-memory SQLite URLs share a single connection (``StaticPool``) so every
    session sees the same database, which is what tests rely on.
    """

    def __init__(self, settings: DatabaseSettings):
        self._settings = settings
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database not initialized")
        return self._engine

    async def initialize(self) -> None:
        if self._engine is not None:
            return

        url = make_url(self._settings.url)
        kwargs: dict = {"echo": self._settings.echo}
        if url.get_backend_name() == "sqlite":
            database = url.database
            if not database or database == ":memory:":
                kwargs["poolclass"] = StaticPool
                kwargs["connect_args"] = {"check_same_thread": False}
            else:
                Path(database).parent.mkdir(parents=True, exist_ok=True)

        self._engine = create_async_engine(url, **kwargs)
        self._sessionmaker = async_sessionmaker(self._engine, expire_on_commit=False)
        logger.info(f"Database engine created for {url.render_as_string(hide_password=True)}")

    async def shutdown(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None

    async def create_all(self) -> None:
        """Create every table that does not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session; commits on success and rolls back on error."""
        if self._sessionmaker is None:
            raise RuntimeError("Database not initialized")
        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def __aenter__(self) -> Database:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()
        return False
