"""API test fixtures: httpx.AsyncClient and dependency overrides.

Provides an async test client that exercises the full FastAPI app with
the database dependency pointed at the per-test in-memory engine and the
ConnectionManager replaced by a mock, so broadcasts can be asserted on.

ASGITransport does not run the lifespan, so no heartbeat or replay tasks
are started.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from matchfeed.common.database import get_db
from matchfeed.main import app
from matchfeed.websocket.manager import ConnectionManager, get_connection_manager


@pytest.fixture
def mock_manager() -> AsyncMock:
    """ConnectionManager stand-in that reports zero recipients."""
    manager = AsyncMock(spec=ConnectionManager)
    manager.broadcast_to_all.return_value = 0
    manager.broadcast_to_match.return_value = 0
    return manager


@pytest_asyncio.fixture
async def client(session_factory, mock_manager) -> AsyncClient:
    """Async HTTP client with get_db and the WS manager overridden."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_connection_manager] = lambda: mock_manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
