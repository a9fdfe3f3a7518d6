"""FastAPI application factory for the live match commentary feed.

Run with: python -m matchfeed.main  (or the ``matchfeed`` console script)

The equivalent uvicorn command line:
    uvicorn matchfeed.main:app --ws-ping-interval 30 --ws-ping-timeout 30 --ws-max-size 1048576
"""

from __future__ import annotations

import asyncio
import contextlib
import traceback
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app as make_metrics_app
from sqlalchemy import text
from starlette.middleware.gzip import GZipMiddleware

from matchfeed.api.commentary import router as commentary_router
from matchfeed.api.matches import router as matches_router
from matchfeed.common.config import get_settings
from matchfeed.common.database import create_tables, dispose_engine
from matchfeed.common.exceptions import MatchFeedError
from matchfeed.common.logging import configure_logging, get_logger
from matchfeed.common.metrics import set_app_info
from matchfeed.common.middleware import (
    PrometheusMiddleware,
    RequestIdMiddleware,
    RequestLoggingMiddleware,
    request_id_var,
)
from matchfeed.replay.engine import ReplayEngine
from matchfeed.replay.queries import query_eligible_commentary
from matchfeed.websocket.heartbeat import HeartbeatMonitor
from matchfeed.websocket.manager import ConnectionManager
from matchfeed.websocket.router import router as ws_router

logger = get_logger("SYSTEM")

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifecycle: start/stop background tasks."""
    settings = get_settings()

    if settings.create_tables_on_startup:
        await create_tables()

    manager: ConnectionManager = application.state.ws_manager

    heartbeat = HeartbeatMonitor(
        manager,
        interval_seconds=settings.heartbeat_interval_seconds,
        app_ping=settings.heartbeat_app_ping,
    )
    heartbeat_task = asyncio.create_task(heartbeat.run())
    logger.info(
        "Heartbeat monitor started",
        extra={"data": {"interval_seconds": settings.heartbeat_interval_seconds}},
    )

    replay: ReplayEngine | None = None
    if settings.replay_enabled:
        replay = ReplayEngine(
            manager,
            query_eligible_commentary,
            poll_interval_seconds=settings.replay_poll_interval_seconds,
        )
        replay.start()
    application.state.replay_engine = replay

    yield

    # Shutdown: stop producers first, then drop connections
    if replay is not None:
        await replay.stop()

    heartbeat_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await heartbeat_task
    logger.info("Heartbeat monitor stopped")

    await manager.close_all()
    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Match Feed",
        version=VERSION,
        description="Live match commentary over REST and WebSocket",
        lifespan=lifespan,
    )

    # Process-wide subscription state, created once per app
    app.state.ws_manager = ConnectionManager()
    app.state.replay_engine = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Last added = outermost = runs first on request
    app.add_middleware(GZipMiddleware, minimum_size=1000)  # Compress responses > 1KB
    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # ─── Exception Handlers ───

    @app.exception_handler(MatchFeedError)
    async def matchfeed_exception_handler(request: Request, exc: MatchFeedError) -> JSONResponse:
        """Map MatchFeedError subclasses to their HTTP status."""
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"{type(exc).__name__}: {exc}",
            extra={"data": {"path": str(request.url), "context": exc.context}},
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": type(exc).__name__,
                "message": exc.message,
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Invalid bodies, params, and queries are a 400, not FastAPI's 422."""
        return JSONResponse(
            status_code=400,
            content={
                "error": "ValidationError",
                "message": "Invalid request",
                "details": jsonable_errors(exc),
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions: log traceback, return 500."""
        rid = request_id_var.get("")
        logger.error(
            f"Unhandled {type(exc).__name__}: {exc}",
            extra={
                "data": {
                    "path": str(request.url),
                    "request_id": rid,
                    "traceback": traceback.format_exc(),
                }
            },
        )
        body: dict = {
            "error": "InternalServerError",
            "message": "An unexpected error occurred",
        }
        if rid:
            body["request_id"] = rid
        return JSONResponse(status_code=500, content=body)

    # ─── Health / Readiness ───

    @app.get("/health")
    async def health_check() -> dict:
        """Liveness probe: confirms the process is running."""
        return {"status": "ok", "version": VERSION}

    @app.get("/ready")
    async def readiness_check() -> JSONResponse:
        """Readiness probe: checks DB connectivity and reports WS load."""
        checks: dict[str, str] = {}
        all_ok = True

        try:
            from matchfeed.common.database import _get_engine

            async with _get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            checks["database"] = "ok"
        except Exception as exc:
            checks["database"] = f"error: {type(exc).__name__}"
            all_ok = False

        return JSONResponse(
            status_code=200 if all_ok else 503,
            content={
                "status": "ok" if all_ok else "degraded",
                "version": VERSION,
                "checks": checks,
                "ws_connections": app.state.ws_manager.active_count,
            },
        )

    # ─── Prometheus Metrics ───

    app.mount("/metrics", make_metrics_app())
    set_app_info(version=VERSION, environment=settings.environment)

    # ─── Router Mounting ───

    app.include_router(matches_router, prefix="/matches", tags=["matches"])
    app.include_router(commentary_router, prefix="/matches", tags=["commentary"])
    app.include_router(ws_router, tags=["websocket"])

    return app


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Strip non-JSON values (e.g. exception objects in ``ctx``) from errors."""
    cleaned = []
    for error in exc.errors():
        item = {k: v for k, v in error.items() if k in ("loc", "msg", "type")}
        item["loc"] = [str(part) for part in item.get("loc", ())]
        cleaned.append(item)
    return cleaned


app = create_app()


def uvicorn_options() -> dict:
    """Server options taken from settings.

    uvicorn owns protocol-level ping/pong and the inbound frame size
    limit; the heartbeat monitor only reacts to what it reports.
    """
    settings = get_settings()
    return {
        "host": settings.host,
        "port": settings.port,
        "ws_ping_interval": settings.ws_ping_interval_seconds,
        "ws_ping_timeout": settings.ws_ping_timeout_seconds,
        "ws_max_size": settings.ws_max_message_bytes,
    }


def run() -> None:
    """Console entry point: ``matchfeed``."""
    uvicorn.run(app, **uvicorn_options())


if __name__ == "__main__":
    run()
