"""One viewer's WebSocket session and the state it owns.

A Connection carries its own liveness flag and its own set of subscribed
match ids, so there is no side table that can drift out of sync with
the socket. Registry membership is only valid while the connection is
OPEN; ConnectionManager.disconnect() moves it to CLOSED exactly once.

State machine:
    CONNECTING -> OPEN -> CLOSING -> CLOSED
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
from uuid import uuid4

from fastapi import WebSocket
from starlette.websockets import WebSocketState

# Close codes (RFC 6455)
CLOSE_GOING_AWAY = 1001
CLOSE_MESSAGE_TOO_BIG = 1009


class ConnectionState(str, enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class Connection:
    """A WebSocket plus its liveness flag and subscriptions.

    Args:
        websocket: The FastAPI WebSocket from the upgrade handshake.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.id = uuid4().hex[:12]
        self.state = ConnectionState.CONNECTING
        self.is_alive = True
        self.subscriptions: set[str] = set()
        self._reader: asyncio.Task | None = None

    def __repr__(self) -> str:
        return f"Connection(id={self.id!r}, state={self.state.value})"

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    @property
    def transport_connected(self) -> bool:
        """False once the ASGI server has reported the peer gone.

        The server sends protocol-level pings, which browsers answer on
        their own, and drops a peer that misses its pong. This is the
        liveness signal for viewers that go quiet after subscribing.
        """
        return self.websocket.client_state is not WebSocketState.DISCONNECTED

    async def accept(self) -> None:
        """Complete the handshake and move to OPEN."""
        await self.websocket.accept()
        self.state = ConnectionState.OPEN

    async def send_text(self, text: str) -> None:
        """Send one text frame. Raises whatever the transport raises."""
        await self.websocket.send_text(text)

    def mark_alive(self) -> None:
        self.is_alive = True

    def mark_closing(self) -> None:
        """Record that the peer started (or finished) the close handshake."""
        if self.state in (ConnectionState.CONNECTING, ConnectionState.OPEN):
            self.state = ConnectionState.CLOSING

    def bind_reader(self, task: asyncio.Task) -> None:
        """Attach the task reading from this socket so terminate() can stop it."""
        self._reader = task

    async def terminate(self, code: int = CLOSE_GOING_AWAY) -> None:
        """Forcibly end the session without waiting for the peer.

        Stops the reader task and closes the socket. Registry cleanup is
        not done here; ConnectionManager.disconnect() owns that.
        """
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return
        self.state = ConnectionState.CLOSING

        reader = self._reader
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()

        # The peer may already be gone; a failed close changes nothing
        with contextlib.suppress(Exception):
            await self.websocket.close(code=code)
