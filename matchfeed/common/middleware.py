"""HTTP middleware: request IDs, request logging, and Prometheus metrics.

BaseHTTPMiddleware only wraps ``http`` scopes, so the /ws endpoint is
untouched by everything here.

Usage:
    from matchfeed.common.middleware import request_id_var
    rid = request_id_var.get("")  # Access current request ID from anywhere
"""

from __future__ import annotations

import re
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from matchfeed.common.logging import get_logger
from matchfeed.common.metrics import (
    HTTP_REQUEST_DURATION_SECONDS,
    HTTP_REQUESTS_IN_PROGRESS,
    HTTP_REQUESTS_TOTAL,
)

request_id_var: ContextVar[str] = ContextVar("request_id", default="")

logger = get_logger("API")

# Probe and scrape traffic stays out of logs and metrics
_QUIET_PATHS = frozenset({"/health", "/ready", "/metrics"})

_PATH_ID_PATTERNS = [
    (re.compile(r"/[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"), "/{id}"),
    (re.compile(r"/\d+"), "/{id}"),
]


def normalize_path(path: str) -> str:
    """Collapse ids in a URL path to ``{id}`` to bound label cardinality.

    Examples:
        /matches/3f0c...-.../commentary -> /matches/{id}/commentary
    """
    for pattern, replacement in _PATH_ID_PATTERNS:
        path = pattern.sub(replacement, path)
    return path


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Propagate ``X-Request-ID`` (or mint one) for every request.

    The ID is stored in ``request_id_var`` so the structured logger can
    tag every line emitted while handling the request.
    """

    async def dispatch(self, request: Request, call_next) -> Response:  # noqa: ANN001
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex
        request_id_var.set(rid)

        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status, and duration of each request."""

    async def dispatch(self, request: Request, call_next) -> Response:  # noqa: ANN001
        if request.url.path.rstrip("/") in _QUIET_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000

        logger.info(
            f"{request.method} {request.url.path} {response.status_code}",
            extra={
                "data": {
                    "status": response.status_code,
                    "duration_ms": round(duration_ms, 1),
                }
            },
        )
        return response


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Record request count, latency, and in-flight gauge per route template."""

    async def dispatch(self, request: Request, call_next) -> Response:  # noqa: ANN001
        path = request.url.path
        if path.rstrip("/") in _QUIET_PATHS:
            return await call_next(request)

        method = request.method
        path_template = normalize_path(path)
        status_code = "500"

        HTTP_REQUESTS_IN_PROGRESS.labels(method=method).inc()
        start = time.perf_counter()
        try:
            response = await call_next(request)
            status_code = str(response.status_code)
            return response
        finally:
            HTTP_REQUESTS_IN_PROGRESS.labels(method=method).dec()
            HTTP_REQUESTS_TOTAL.labels(
                method=method,
                path_template=path_template,
                status_code=status_code,
            ).inc()
            HTTP_REQUEST_DURATION_SECONDS.labels(
                method=method,
                path_template=path_template,
            ).observe(time.perf_counter() - start)
