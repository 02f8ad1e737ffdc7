# rma_tracker/database.py
"""
Database handle for RMA Tracker.

Uses SQLAlchemy 2.0 async (asyncpg in production, aiosqlite in tests).
The engine lives on an explicitly constructed ``Database`` object which the
application opens at startup and closes at shutdown; nothing here is a
process-wide singleton.
"""
from __future__ import annotations
from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager
import logging

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import event, text

from rma_tracker.settings import Settings

logger = logging.getLogger(__name__)

# ============================================================================
# Base class for all ORM models
# ============================================================================

class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ============================================================================
# Engine and Session Factory
# ============================================================================

class Database:
    """Owns the engine / pool and hands out sessions."""

    def __init__(self, url: str, *, echo: bool = False, pool_size: int = 5, max_overflow: int = 10):
        self.url = url
        self.echo = echo
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.database_url,
            echo=settings.DB_ECHO,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not open")
        return self._engine

    async def open(self) -> None:
        """Create the engine and session factory."""
        if self._engine is not None:
            return  # Already open

        kwargs = {"echo": self.echo, "pool_pre_ping": True}
        if not self.is_sqlite:
            kwargs["pool_size"] = self.pool_size
            kwargs["max_overflow"] = self.max_overflow
        self._engine = create_async_engine(self.url, **kwargs)

        if self.is_sqlite:
            event.listen(self._engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("Database opened (%s)", self._engine.url.render_as_string(hide_password=True))

    async def close(self) -> None:
        """Dispose pooled connections."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database closed")

    async def create_all(self) -> None:
        """Create all tables (tests / first boot; migrations own production)."""
        from rma_tracker import db_models  # noqa: F401  registers mappers

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        from rma_tracker import db_models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    # ------------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------------

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Plain session for reads. Nothing is committed.

        Usage:
            async with db.session() as s:
                result = await s.execute(...)
        """
        if self._session_factory is None:
            await self.open()

        async with self._session_factory() as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Explicit transaction scope for composite writes.

        Usage:
            async with db.transaction() as s:
                await s.execute(...)
                await s.execute(...)
            # Commits on success, rolls back on exception
        """
        if self._session_factory is None:
            await self.open()

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    # ------------------------------------------------------------------------
    # Health Check
    # ------------------------------------------------------------------------

    async def check_health(self) -> dict:
        """Check database connectivity and return status."""
        try:
            async with self.session() as s:
                result = await s.execute(text("SELECT 1"))
                result.scalar()
            return {"status": "healthy", "database": "connected"}
        except Exception as e:
            logger.warning("Database health check failed: %s", e)
            return {"status": "unhealthy", "database": "disconnected", "error": str(e)}


# ============================================================================
# FastAPI dependencies
# ============================================================================

def get_database(request: Request) -> Database:
    """The handle opened by the app lifespan."""
    return request.app.state.db


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for FastAPI - one transaction per request.

    Usage:
        @router.post("/units")
        async def create_unit(db: AsyncSession = Depends(get_session)):
            ...
    """
    async with get_database(request).transaction() as session:
        yield session
