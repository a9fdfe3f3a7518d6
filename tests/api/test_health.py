"""Tests for health, readiness, metrics, and cross-cutting HTTP behaviour.

The /health endpoint is a simple liveness probe (process is running).
The /ready endpoint verifies database connectivity.
"""

from __future__ import annotations

import contextlib
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from matchfeed.main import VERSION, app

pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def bare_client() -> AsyncClient:
    """Client with no dependency overrides; tests /health and /ready directly."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@contextlib.asynccontextmanager
async def _mock_connect():
    """Async context manager that simulates a successful DB connection."""
    mock_conn = AsyncMock()
    yield mock_conn


def _healthy_engine() -> MagicMock:
    engine = MagicMock()
    engine.connect = _mock_connect
    return engine


def _broken_engine() -> MagicMock:
    engine = MagicMock()
    engine.connect = MagicMock(side_effect=ConnectionRefusedError("db down"))
    return engine


class TestHealthEndpoint:
    async def test_health_returns_ok_and_version(self, bare_client: AsyncClient):
        resp = await bare_client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "version": VERSION}


class TestReadyEndpoint:
    async def test_ready_when_database_reachable(self, bare_client: AsyncClient):
        with patch("matchfeed.common.database._get_engine", return_value=_healthy_engine()):
            resp = await bare_client.get("/ready")

        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["checks"] == {"database": "ok"}
        assert body["ws_connections"] == 0

    async def test_degraded_when_database_unreachable(self, bare_client: AsyncClient):
        with patch("matchfeed.common.database._get_engine", return_value=_broken_engine()):
            resp = await bare_client.get("/ready")

        assert resp.status_code == 503
        body = resp.json()
        assert body["status"] == "degraded"
        assert body["checks"]["database"] == "error: ConnectionRefusedError"


class TestMetricsEndpoint:
    async def test_metrics_exposes_ws_gauges(self, bare_client: AsyncClient):
        resp = await bare_client.get("/metrics/")
        assert resp.status_code == 200
        assert "ws_connections_active" in resp.text
        assert "replay_polls_total" in resp.text


class TestRequestId:
    async def test_generated_when_absent(self, bare_client: AsyncClient):
        resp = await bare_client.get("/health")
        assert resp.headers["X-Request-ID"]

    async def test_propagated_when_present(self, bare_client: AsyncClient):
        resp = await bare_client.get("/health", headers={"X-Request-ID": "abc123"})
        assert resp.headers["X-Request-ID"] == "abc123"
