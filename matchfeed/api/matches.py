"""Match endpoints: list, create, and fetch one.

Creating a match notifies every open WebSocket connection with a
``match_created`` frame, since nobody can have subscribed to a match
that did not exist yet.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matchfeed.api.deps import get_match_or_404, match_to_record, page_limit
from matchfeed.api.response_schemas import MatchEnvelope, MatchList
from matchfeed.common.config import get_settings
from matchfeed.common.database import get_db
from matchfeed.common.exceptions import InvalidMatchTimesError
from matchfeed.common.logging import get_logger
from matchfeed.common.match_status import get_match_status, sync_match_status
from matchfeed.common.models import Match
from matchfeed.common.schemas import MatchCreate
from matchfeed.websocket.events import MatchCreatedEvent
from matchfeed.websocket.manager import ConnectionManager, get_connection_manager

logger = get_logger("API")

router = APIRouter()


@router.get("", response_model=MatchList)
async def list_matches(
    limit: int | None = Depends(page_limit),
    db: AsyncSession = Depends(get_db),
) -> MatchList:
    """List matches, newest first.

    Args:
        limit: Page size (defaults to ``matches_default_limit``).
        db: Async database session.
    """
    settings = get_settings()
    effective = min(limit or settings.matches_default_limit, settings.max_list_limit)
    result = await db.execute(select(Match).order_by(Match.created_at.desc()).limit(effective))
    matches = result.scalars().all()
    return MatchList(data=[match_to_record(m) for m in matches])


@router.post("", response_model=MatchEnvelope, status_code=status.HTTP_201_CREATED)
async def create_match(
    body: MatchCreate,
    db: AsyncSession = Depends(get_db),
    manager: ConnectionManager = Depends(get_connection_manager),
) -> MatchEnvelope:
    """Create a match with a status derived from its start/end times.

    Raises:
        InvalidMatchTimesError: If the match ends before it starts (400).
    """
    if body.end_time < body.start_time:
        raise InvalidMatchTimesError(
            "endTime must not be before startTime",
            context={"start_time": body.start_time.isoformat(), "end_time": body.end_time.isoformat()},
        )

    match = Match(
        sport=body.sport,
        home_team=body.home_team,
        away_team=body.away_team,
        start_time=body.start_time,
        end_time=body.end_time,
        home_score=body.home_score,
        away_score=body.away_score,
        status=get_match_status(body.start_time, body.end_time),
    )
    db.add(match)
    await db.commit()
    await db.refresh(match)

    record = match_to_record(match)
    logger.info(
        "Match created",
        extra={"data": {"match_id": record.id, "sport": record.sport, "status": record.status}},
    )

    await manager.broadcast_to_all(MatchCreatedEvent(match=record))
    return MatchEnvelope(data=record)


@router.get("/{match_id}", response_model=MatchEnvelope)
async def get_match(
    match: Match = Depends(get_match_or_404),
    db: AsyncSession = Depends(get_db),
) -> MatchEnvelope:
    """Fetch one match, refreshing its status from the clock first."""
    if sync_match_status(match):
        await db.commit()
        await db.refresh(match)
    return MatchEnvelope(data=match_to_record(match))
