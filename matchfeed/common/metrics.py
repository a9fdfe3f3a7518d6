"""Prometheus metrics definitions for the match feed service.

All metric objects are centralized here as module-level singletons.
Import what you need from anywhere in the codebase:

    from matchfeed.common.metrics import WS_CONNECTIONS_ACTIVE

The /metrics endpoint is mounted in matchfeed/main.py via
prometheus_client.make_asgi_app().
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Info

# ─── App Info ───

APP_INFO = Info("app", "Application metadata")

# ─── HTTP Metrics ───

HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "path_template", "status_code"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    labelnames=["method", "path_template"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

HTTP_REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "HTTP requests currently in progress",
    labelnames=["method"],
)

# ─── WebSocket Metrics ───

WS_CONNECTIONS_ACTIVE = Gauge(
    "ws_connections_active",
    "Open WebSocket connections",
)

WS_SUBSCRIPTIONS_ACTIVE = Gauge(
    "ws_subscriptions_active",
    "Match ids with at least one subscriber",
)

WS_MESSAGES_SENT_TOTAL = Counter(
    "ws_messages_sent_total",
    "WebSocket frames sent to clients",
    labelnames=["event_type"],
)

WS_SEND_FAILURES_TOTAL = Counter(
    "ws_send_failures_total",
    "Sends that failed and terminated the connection",
)

WS_CONNECTIONS_REAPED_TOTAL = Counter(
    "ws_connections_reaped_total",
    "Connections terminated by the heartbeat for missing a pong",
)

# ─── Replay Engine Metrics ───

REPLAY_POLLS_TOTAL = Counter(
    "replay_polls_total",
    "Replay engine poll cycles",
    labelnames=["outcome"],
)

REPLAY_EVENTS_RELEASED_TOTAL = Counter(
    "replay_events_released_total",
    "Commentary rows released to subscribers by the replay engine",
)


def set_app_info(version: str, environment: str) -> None:
    """Set the app_info metric values. Called once at startup."""
    APP_INFO.info({"version": version, "environment": environment})
