"""Server -> client WebSocket frames.

Every frame is a JSON object with a ``type`` discriminator. Frames are
built as Pydantic models and encoded once per broadcast with
``encode_payload``; the encoded string is reused for every recipient.

Usage:
    from matchfeed.websocket.events import CommentaryEvent, encode_payload

    frame = CommentaryEvent(match_id=row.match_id, data=row)
    text = encode_payload(frame)
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Literal

from pydantic import BaseModel

from matchfeed.common.schemas import CamelModel, CommentaryRecord, MatchRecord

INVALID_JSON_MESSAGE = "Invalid JSON"


class WelcomeEvent(CamelModel):
    """First frame on every new connection."""

    type: Literal["welcome"] = "welcome"


class MatchCreatedEvent(CamelModel):
    """Broadcast to every connection when a match is created."""

    type: Literal["match_created"] = "match_created"
    match: MatchRecord


class CommentaryEvent(CamelModel):
    """A commentary row pushed to the subscribers of its match."""

    type: Literal["commentary"] = "commentary"
    match_id: str | None = None
    data: CommentaryRecord


class SubscribedEvent(CamelModel):
    """Acknowledges a subscribe request (type mirrors the request)."""

    type: Literal["subscribe"] = "subscribe"
    match_id: str


class UnsubscribedEvent(CamelModel):
    """Acknowledges an unsubscribe request."""

    type: Literal["unsubscribed"] = "unsubscribed"
    match_id: str


class ErrorEvent(CamelModel):
    type: Literal["error"] = "error"
    message: str


class PingEvent(CamelModel):
    """Optional heartbeat frame. Clients need not answer it."""

    type: Literal["ping"] = "ping"


Payload = BaseModel | Mapping[str, Any]


def encode_payload(payload: Payload) -> str:
    """Serialize a frame to its JSON text form."""
    if isinstance(payload, BaseModel):
        return payload.model_dump_json(by_alias=True)
    return json.dumps(payload, default=str)


def payload_type(payload: Payload) -> str:
    """Return the frame's ``type`` for metric labels."""
    if isinstance(payload, BaseModel):
        return str(getattr(payload, "type", "unknown"))
    return str(payload.get("type", "unknown"))
