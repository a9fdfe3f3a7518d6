"""FastAPI dependencies and ORM-to-schema converters for the REST layer."""

from __future__ import annotations

from fastapi import Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from matchfeed.common.config import get_settings
from matchfeed.common.database import get_db
from matchfeed.common.exceptions import NotFoundError
from matchfeed.common.models import Commentary, Match
from matchfeed.common.schemas import CommentaryRecord, MatchRecord
from matchfeed.replay.engine import ReplayEngine


async def get_match_or_404(match_id: str, db: AsyncSession = Depends(get_db)) -> Match:
    """Load the match named in the path, or raise NotFoundError (404).

    Args:
        match_id: The ``{match_id}`` path parameter.
        db: Async database session from FastAPI dependency injection.
    """
    match = await db.get(Match, match_id)
    if match is None:
        raise NotFoundError("Match not found", context={"match_id": match_id})
    return match


def page_limit(
    limit: int | None = Query(default=None, gt=0, le=get_settings().max_list_limit),
) -> int | None:
    """The ``?limit=`` query parameter shared by the list endpoints.

    Values outside ``1..max_list_limit`` are rejected with a 400 by the
    validation handler; None means the endpoint's default.
    """
    return limit


def get_replay_engine(request: Request) -> ReplayEngine | None:
    """The running replay engine, or None when replay is disabled."""
    return getattr(request.app.state, "replay_engine", None)


def match_to_record(match: Match) -> MatchRecord:
    """Convert a Match ORM model to its wire schema."""
    return MatchRecord.model_validate(match)


def commentary_to_record(row: Commentary) -> CommentaryRecord:
    """Convert a Commentary ORM model to its wire schema.

    The ORM keeps the JSON column under ``extra_metadata``; the schema's
    before-validator maps it back to ``metadata``.
    """
    return CommentaryRecord.model_validate(row)
