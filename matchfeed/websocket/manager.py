"""WebSocket connection manager: lifecycle and broadcast dispatch.

Tracks every open Connection, owns the SubscriptionRegistry, and fans
payloads out either to one match's subscribers or to everyone. A payload
is encoded once per broadcast and the same string is sent to each
recipient. A failed send terminates that connection (which runs the same
cleanup as a normal close) and delivery continues with the next one.

One instance is created at startup in matchfeed/main.py and stored on
``app.state.ws_manager``; handlers get it through
``get_connection_manager``.

Usage:
    conn = await manager.connect(websocket)
    await manager.broadcast_to_match(match_id, CommentaryEvent(...))
    await manager.broadcast_to_all(MatchCreatedEvent(...))
    manager.disconnect(conn)
"""

from __future__ import annotations

from fastapi import WebSocket
from starlette.requests import HTTPConnection

from matchfeed.common.logging import get_logger
from matchfeed.common.metrics import (
    WS_CONNECTIONS_ACTIVE,
    WS_MESSAGES_SENT_TOTAL,
    WS_SEND_FAILURES_TOTAL,
)
from matchfeed.websocket.connection import CLOSE_GOING_AWAY, Connection, ConnectionState
from matchfeed.websocket.events import Payload, WelcomeEvent, encode_payload, payload_type
from matchfeed.websocket.registry import SubscriptionRegistry

logger = get_logger("WS")


class ConnectionManager:
    """Owns open connections and delivers frames to them.

    Safe on a single asyncio event loop: registry and connection-set
    mutations never await, so they cannot interleave.

    Args:
        registry: Subscription registry to use (a fresh one by default).
    """

    def __init__(self, registry: SubscriptionRegistry | None = None) -> None:
        self.registry = registry if registry is not None else SubscriptionRegistry()
        self._connections: set[Connection] = set()

    # ─── Lifecycle ───

    async def connect(self, websocket: WebSocket) -> Connection:
        """Accept a WebSocket, track it, and send the welcome frame.

        Args:
            websocket: The FastAPI WebSocket to accept and track.

        Returns:
            The new OPEN Connection.
        """
        connection = Connection(websocket)
        await connection.accept()
        self._connections.add(connection)
        WS_CONNECTIONS_ACTIVE.inc()
        logger.info(
            "WebSocket connected",
            extra={
                "data": {
                    "connection_id": connection.id,
                    "active_connections": len(self._connections),
                }
            },
        )
        await self.send(connection, WelcomeEvent())
        return connection

    def disconnect(self, connection: Connection) -> None:
        """Move a connection to CLOSED and drop its subscriptions.

        Idempotent: the first call does the cleanup, later calls are no-ops,
        whichever path (peer close, send failure, heartbeat reap) got here
        first.
        """
        if connection.state is ConnectionState.CLOSED:
            return
        connection.state = ConnectionState.CLOSED
        self.registry.cleanup(connection)
        if connection in self._connections:
            self._connections.discard(connection)
            WS_CONNECTIONS_ACTIVE.dec()
        logger.info(
            "WebSocket disconnected",
            extra={
                "data": {
                    "connection_id": connection.id,
                    "active_connections": len(self._connections),
                }
            },
        )

    async def terminate(self, connection: Connection, code: int = CLOSE_GOING_AWAY) -> None:
        """Force-close a connection and run the close cleanup."""
        await connection.terminate(code=code)
        self.disconnect(connection)

    # ─── Delivery ───

    async def send(self, connection: Connection, payload: Payload) -> bool:
        """Send one frame to one connection.

        Returns:
            True if the frame was handed to the transport.
        """
        return await self._deliver(connection, encode_payload(payload), payload_type(payload))

    async def broadcast_to_match(self, match_id: str, payload: Payload) -> int:
        """Send a frame to every open subscriber of ``match_id``.

        No subscribers is the normal case for most matches and is not an
        error.

        Returns:
            Number of connections the frame was sent to.
        """
        subscribers = self.registry.subscribers(match_id)
        if not subscribers:
            return 0

        message = encode_payload(payload)
        event_type = payload_type(payload)
        sent = 0
        for connection in subscribers:
            if await self._deliver(connection, message, event_type):
                sent += 1
        return sent

    async def broadcast_to_all(self, payload: Payload) -> int:
        """Send a frame to every open connection, subscribed or not.

        Returns:
            Number of connections the frame was sent to.
        """
        if not self._connections:
            return 0

        message = encode_payload(payload)
        event_type = payload_type(payload)
        sent = 0
        for connection in list(self._connections):
            if await self._deliver(connection, message, event_type):
                sent += 1
        return sent

    async def _deliver(self, connection: Connection, message: str, event_type: str) -> bool:
        # Open-state is checked at send time; a close may have raced the broadcast
        if not connection.is_open:
            return False
        try:
            await connection.send_text(message)
        except Exception as exc:
            WS_SEND_FAILURES_TOTAL.inc()
            logger.warning(
                "WebSocket send failed, terminating connection",
                extra={
                    "data": {
                        "connection_id": connection.id,
                        "event_type": event_type,
                        "error": str(exc),
                    }
                },
            )
            await self.terminate(connection)
            return False
        WS_MESSAGES_SENT_TOTAL.labels(event_type=event_type).inc()
        return True

    # ─── Introspection ───

    @property
    def connections(self) -> list[Connection]:
        """Snapshot of tracked connections."""
        return list(self._connections)

    @property
    def active_count(self) -> int:
        """Return the number of active connections."""
        return len(self._connections)

    async def close_all(self) -> None:
        """Terminate every connection (application shutdown)."""
        for connection in list(self._connections):
            await self.terminate(connection)


def get_connection_manager(connection: HTTPConnection) -> ConnectionManager:
    """FastAPI dependency returning the app's ConnectionManager.

    Works for both HTTP and WebSocket routes.
    """
    return connection.app.state.ws_manager
