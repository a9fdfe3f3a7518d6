"""API response envelopes -- types used only by the REST layer.

Every endpoint wraps its payload in ``{"data": ...}``.
"""

from __future__ import annotations

from pydantic import BaseModel

from matchfeed.common.schemas import CommentaryRecord, MatchRecord


class MatchList(BaseModel):
    data: list[MatchRecord]


class MatchEnvelope(BaseModel):
    data: MatchRecord


class CommentaryList(BaseModel):
    data: list[CommentaryRecord]


class CommentaryEnvelope(BaseModel):
    data: CommentaryRecord
