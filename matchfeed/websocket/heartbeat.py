"""Liveness monitor that reaps half-open WebSocket connections.

Two-phase mark/sweep per interval: a connection that is still marked
not-alive from the previous tick is terminated; every other open
connection is re-marked from its transport. The ping/pong exchange itself
is protocol-level and runs inside uvicorn (``ws_ping_interval`` /
``ws_ping_timeout``); a peer that misses its pong is disconnected there,
and the next sweeps finish it off here if its read loop has not already.

A viewer that subscribes and then stays silent is never reaped. Inbound
frames also mark a connection alive. The optional application-level
``{"type": "ping"}`` frame (``heartbeat_app_ping``) is informational only.

Started as an asyncio.Task during FastAPI app lifespan.

Usage:
    monitor = HeartbeatMonitor(manager, interval_seconds=30)
    task = asyncio.create_task(monitor.run())
"""

from __future__ import annotations

import asyncio

from matchfeed.common.logging import get_logger
from matchfeed.common.metrics import WS_CONNECTIONS_REAPED_TOTAL
from matchfeed.websocket.events import PingEvent
from matchfeed.websocket.manager import ConnectionManager

logger = get_logger("WS")


class HeartbeatMonitor:
    """Periodically checks connections and terminates dead ones.

    Args:
        manager: The ConnectionManager whose connections are monitored.
        interval_seconds: Time between sweeps.
        app_ping: Also send a ``{"type": "ping"}`` frame to each live connection.
    """

    def __init__(
        self,
        manager: ConnectionManager,
        interval_seconds: float = 30.0,
        app_ping: bool = False,
    ) -> None:
        self._manager = manager
        self.interval_seconds = interval_seconds
        self.app_ping = app_ping

    async def sweep(self) -> int:
        """Run one mark/sweep pass over the open connections.

        Returns:
            Number of connections terminated.
        """
        reaped = 0
        for connection in self._manager.connections:
            if not connection.is_open:
                continue

            if not connection.is_alive:
                await self._manager.terminate(connection)
                WS_CONNECTIONS_REAPED_TOTAL.inc()
                reaped += 1
                continue

            connection.is_alive = connection.transport_connected
            if self.app_ping and connection.is_alive:
                await self._manager.send(connection, PingEvent())

        if reaped:
            logger.info(
                "Reaped dead connections",
                extra={
                    "data": {
                        "reaped": reaped,
                        "active_connections": self._manager.active_count,
                    }
                },
            )
        return reaped

    async def run(self) -> None:
        """Sweep every ``interval_seconds`` until cancelled."""
        while True:
            try:
                await asyncio.sleep(self.interval_seconds)
                await self.sweep()
            except asyncio.CancelledError:
                logger.info("Heartbeat monitor shutting down")
                raise
            except Exception as exc:
                logger.error(
                    "Heartbeat sweep failed",
                    extra={"data": {"error": str(exc)}},
                )
