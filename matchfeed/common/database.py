"""Async database engine and session factory.

Uses SQLAlchemy 2.0+ async with asyncpg for PostgreSQL
and aiosqlite for testing.

Usage in FastAPI:
    from matchfeed.common.database import get_db

    @router.get("/example")
    async def example(db: AsyncSession = Depends(get_db)):
        result = await db.execute(select(Match))
        ...

Usage in background tasks (replay engine, seeder):
    from matchfeed.common.database import session_scope

    async with session_scope() as db:
        result = await db.execute(select(Commentary))
        ...
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from matchfeed.common.config import get_settings

# Create engine lazily on first use
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _get_engine() -> AsyncEngine:
    """Get or create the async engine (lazy singleton)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        kwargs: dict = {"pool_pre_ping": True}
        # SQLite pools (StaticPool / NullPool) reject sizing arguments
        if not settings.database_url.startswith("sqlite"):
            kwargs["pool_size"] = settings.db_pool_size
            kwargs["max_overflow"] = settings.db_max_overflow
        _engine = create_async_engine(
            settings.database_url,
            echo=(settings.environment == "development"),
            **kwargs,
        )
    return _engine


def _get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory (lazy singleton)."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=_get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that provides an async database session.

    The session is automatically closed when the request finishes.
    Transactions must be committed explicitly by the caller.
    """
    factory = _get_session_factory()
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """Session for work outside a request (replay polls, seeding).

    Closes the session on exit. Commits are the caller's job.
    """
    factory = _get_session_factory()
    async with factory() as session:
        yield session


async def create_tables() -> None:
    """Create all ORM tables that do not exist yet."""
    from matchfeed.common.models import Base

    async with _get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Dispose the engine and forget the session factory (shutdown and tests)."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
    _session_factory = None
