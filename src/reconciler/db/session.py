"""Engine and session lifecycle for the SQL preference and memory stores."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Self

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from reconciler.config.database import DatabaseSettings
from reconciler.db.base import Base

logger = logging.getLogger(__name__)


def _is_memory_sqlite(database_url: str) -> bool:
    url = make_url(database_url)
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def _pool_options(settings: DatabaseSettings) -> dict[str, Any]:
    # Every new connection to an in-memory SQLite database sees an empty one.
    if _is_memory_sqlite(settings.database_url):
        return {"poolclass": StaticPool}
    return {
        "poolclass": NullPool if settings.use_null_pool else None,
        "pool_pre_ping": settings.pool_pre_ping,
    }


class DatabaseManager:
    """Owns the async engine behind ``SqlPreferenceStore`` and ``SqlConversationMemoryStore``.

    Usage:
        db = DatabaseManager.from_env()
        await db.create_schema()
        session = PreferenceSession(user_id, SqlPreferenceStore(db), SqlConversationMemoryStore(db))
        ...
        await db.dispose()
    """

    def __init__(self, settings: DatabaseSettings) -> None:
        self._settings = settings
        self._engine = create_async_engine(settings.database_url, echo=settings.echo, **_pool_options(settings))
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_env(cls) -> Self:
        """Build from ``DATABASE_URL`` and friends."""
        return cls(DatabaseSettings())

    @property
    def in_memory(self) -> bool:
        return _is_memory_sqlite(self._settings.database_url)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession]:
        """One unit of work: committed when the block exits cleanly, rolled back otherwise."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_schema(self) -> None:
        """Create the preference document and conversation memory tables if missing."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Schema ready: %s", ", ".join(sorted(Base.metadata.tables)))

    async def dispose(self) -> None:
        await self._engine.dispose()
