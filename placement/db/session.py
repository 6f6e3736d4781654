"""Database session and engine configuration."""

import logging
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from placement.config import Settings, settings as default_settings
from placement.db.base import Base

logger = logging.getLogger(__name__)


class Database:
    """Owns the async engine and session factory for one process.

    Constructed explicitly (by the FastAPI lifespan, a Celery task or a test)
    and torn down with ``dispose()``.
    """

    def __init__(self, database_url: Optional[str] = None, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.url = database_url or self.settings.DATABASE_URL
        self.engine: AsyncEngine = _create_engine(self.url, self.settings)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def create_all(self) -> None:
        """Create tables (in production, use Alembic migrations)."""
        from placement import models  # noqa: F401  register models

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Database engine disposed")


def _create_engine(url: str, settings: Settings) -> AsyncEngine:
    if url.startswith("sqlite") and ":memory:" in url:
        # In-memory SQLite must share one connection across sessions
        return create_async_engine(
            url,
            echo=settings.DEBUG,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=settings.DEBUG, connect_args={"timeout": 30})
        _serialize_sqlite_writers(engine)
        return engine
    return create_async_engine(
        url,
        echo=settings.DEBUG,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


def _serialize_sqlite_writers(engine: AsyncEngine) -> None:
    """SQLite ignores FOR UPDATE; take the write lock when each transaction begins."""

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
