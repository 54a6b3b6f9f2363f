"""
Tasting AI — Database Engine & Session Management
==================================================

What:  Async SQLAlchemy engine, session factory and declarative base.
Why:   The cache store, usage counters and session log all persist through
       one engine; centralizing it keeps pooling and transaction handling
       consistent.
How:   `Database` owns an engine and an `async_sessionmaker`. `session()`
       is an async context manager that commits on success and rolls back
       on error.
Who:   Constructed by `build_pipeline_service()`; tests construct one against
       a temporary SQLite file.

Architecture Decision:
    The engine is an instance, not a module global, so that tests and
    reconfigured services get their own pools. SQLite (aiosqlite) is the
    default for local use; PostgreSQL (asyncpg) for production.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from tasting_ai.config import Settings


class Base(DeclarativeBase):
    """Base class for all ORM models; its metadata is what Alembic tracks."""
    pass


def _engine_options(settings: Settings) -> dict:
    # SQLite uses a per-file connection; pool sizing options are rejected there
    if settings.database_url.startswith("sqlite"):
        return {"echo": settings.log_level == "DEBUG"}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": settings.db_pool_pre_ping,
        "pool_recycle": 3600,
        "echo": settings.log_level == "DEBUG",
    }


class Database:
    """
    Owns the async engine and hands out transactional sessions.

    Example:
        db = Database.from_settings(settings)
        await db.create_all()
        async with db.session() as session:
            session.add(entry)
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        # expire_on_commit=False: rows stay readable after the transaction closes
        self.session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(create_async_engine(settings.database_url, **_engine_options(settings)))

    @classmethod
    def from_url(cls, url: str) -> "Database":
        return cls(create_async_engine(url))

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide a session scoped to one unit of work.

        On success: commits. On error: rolls back and re-raises. Always closes.
        """
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def create_all(self) -> None:
        """
        Create missing tables.

        Used at startup and in tests. Alembic migrations remain the way to
        evolve an existing production schema.
        """
        # Registers the mapped classes on Base.metadata
        from tasting_ai.models import cache_entry, session_log  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> bool:
        """Run `SELECT 1`; used by the health endpoint."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    async def dispose(self) -> None:
        """Close all pooled connections (application shutdown)."""
        await self.engine.dispose()
