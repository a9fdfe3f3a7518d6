"""FastAPI WebSocket endpoint for match subscriptions.

Provides a WebSocket endpoint at /ws. On connect the client receives a
welcome frame, then subscribes to the matches it is watching; commentary
for those matches is pushed by ConnectionManager.broadcast_to_match().

Usage:
    # In matchfeed/main.py:
    from matchfeed.websocket.router import router as ws_router
    app.include_router(ws_router)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, WebSocket

from matchfeed.common.config import get_settings
from matchfeed.websocket.manager import ConnectionManager, get_connection_manager
from matchfeed.websocket.protocol import ProtocolHandler

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    manager: ConnectionManager = Depends(get_connection_manager),
) -> None:
    """Accept a viewer connection and serve its subscribe/unsubscribe frames.

    Args:
        websocket: The incoming WebSocket connection.
        manager: The app's ConnectionManager.
    """
    connection = await manager.connect(websocket)
    handler = ProtocolHandler(manager, max_message_bytes=get_settings().ws_max_message_bytes)
    await handler.serve(connection)
