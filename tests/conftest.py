"""Root test configuration: shared fixtures for all test modules.

IMPORTANT: Environment variables are set BEFORE any matchfeed imports
so that config.py can load Settings without a .env file.
"""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")  # In-memory SQLite
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("REPLAY_ENABLED", "false")
os.environ.setdefault("CREATE_TABLES_ON_STARTUP", "false")

# Now safe to import matchfeed modules
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from matchfeed.common.config import Settings, get_settings
from matchfeed.common.models import Base

# ─── Clear cached settings so test env vars are used ───
get_settings.cache_clear()


# ─── Test Database ───


@pytest_asyncio.fixture
async def engine():
    """Create an in-memory async engine with all tables (per test)."""
    test_engine = create_async_engine("sqlite+aiosqlite://", echo=False)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    """Provide a database session on the per-test engine."""
    async with session_factory() as session:
        yield session


# ─── Test Settings ───


@pytest.fixture
def test_settings() -> Settings:
    return get_settings()

