"""Per-connection inbound message protocol.

Client -> server frames are JSON text:

    {"type": "subscribe",   "matchId": "<id>"}  -> {"type": "subscribe", "matchId": ...}
    {"type": "unsubscribe", "matchId": "<id>"}  -> {"type": "unsubscribed", "matchId": ...}
    not JSON                                     -> {"type": "error", "message": "Invalid JSON"}
    anything else (including "pong")            -> no reply

Every inbound frame also marks the connection alive for the heartbeat,
though a silent client stays alive as long as its transport does.
Frames larger than the configured limit close the socket with 1009.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

from matchfeed.common.logging import connection_id_var, get_logger
from matchfeed.websocket.connection import CLOSE_MESSAGE_TOO_BIG, Connection
from matchfeed.websocket.events import (
    INVALID_JSON_MESSAGE,
    ErrorEvent,
    SubscribedEvent,
    UnsubscribedEvent,
)
from matchfeed.websocket.manager import ConnectionManager

logger = get_logger("WS")

DEFAULT_MAX_MESSAGE_BYTES = 1024 * 1024


class ProtocolHandler:
    """Reads frames from one connection and applies them to the registry.

    Args:
        manager: ConnectionManager that owns the registry and sends replies.
        max_message_bytes: Largest inbound frame accepted.
    """

    def __init__(
        self,
        manager: ConnectionManager,
        max_message_bytes: int = DEFAULT_MAX_MESSAGE_BYTES,
    ) -> None:
        self._manager = manager
        self._max_message_bytes = max_message_bytes

    async def serve(self, connection: Connection) -> None:
        """Run the read loop until the connection closes, then clean up.

        The loop runs in its own task so the heartbeat can cancel it when
        it terminates a silent connection. Whatever ends the loop, the
        manager's disconnect runs exactly once here.
        """
        token = connection_id_var.set(connection.id)
        reader = asyncio.create_task(self._read_loop(connection))
        connection.bind_reader(reader)
        try:
            await asyncio.wait({reader})
        finally:
            if not reader.done():
                reader.cancel()
            self._manager.disconnect(connection)
            connection_id_var.reset(token)

        if not reader.cancelled() and reader.exception() is not None:
            logger.warning(
                "WebSocket reader failed",
                extra={
                    "data": {
                        "connection_id": connection.id,
                        "error": str(reader.exception()),
                    }
                },
            )

    async def _read_loop(self, connection: Connection) -> None:
        while connection.is_open:
            message = await connection.websocket.receive()
            if message["type"] == "websocket.disconnect":
                connection.mark_closing()
                return

            text = message.get("text")
            raw = text.encode("utf-8") if text is not None else (message.get("bytes") or b"")
            if len(raw) > self._max_message_bytes:
                logger.warning(
                    "Inbound frame too large, closing",
                    extra={"data": {"connection_id": connection.id, "size": len(raw)}},
                )
                await self._manager.terminate(connection, code=CLOSE_MESSAGE_TOO_BIG)
                return

            if text is None:
                try:
                    text = raw.decode("utf-8")
                except UnicodeDecodeError:
                    connection.mark_alive()
                    await self._manager.send(connection, ErrorEvent(message=INVALID_JSON_MESSAGE))
                    continue

            await self.handle_message(connection, text)

    async def handle_message(self, connection: Connection, raw: str) -> None:
        """Decode one text frame and dispatch it."""
        connection.mark_alive()

        try:
            message: Any = json.loads(raw)
        except json.JSONDecodeError:
            await self._manager.send(connection, ErrorEvent(message=INVALID_JSON_MESSAGE))
            return

        if not isinstance(message, dict):
            return

        msg_type = message.get("type")
        match_id = message.get("matchId")
        if not isinstance(match_id, str):
            return

        registry = self._manager.registry
        if msg_type == "subscribe":
            if registry.subscribe(match_id, connection):
                logger.debug(
                    "Client subscribed",
                    extra={"data": {"connection_id": connection.id, "match_id": match_id}},
                )
                await self._manager.send(connection, SubscribedEvent(match_id=match_id))
        elif msg_type == "unsubscribe":
            registry.unsubscribe(match_id, connection)
            logger.debug(
                "Client unsubscribed",
                extra={"data": {"connection_id": connection.id, "match_id": match_id}},
            )
            await self._manager.send(connection, UnsubscribedEvent(match_id=match_id))
