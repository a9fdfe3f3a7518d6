"""Commentary endpoints: list a match's released rows and append new ones.

A newly created row is pushed straight to the match's subscribers and
claimed from the replay engine, so it is delivered once. Rows whose
``created_at`` is still in the future are hidden from the list endpoint;
the replay engine releases them when their time comes.
"""

from __future__ import annotations

from datetime import UTC, datetime

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from matchfeed.api.deps import (
    commentary_to_record,
    get_match_or_404,
    get_replay_engine,
    page_limit,
)
from matchfeed.api.response_schemas import CommentaryEnvelope, CommentaryList
from matchfeed.common.config import get_settings
from matchfeed.common.database import get_db
from matchfeed.common.exceptions import DuplicateSequenceError
from matchfeed.common.logging import get_logger
from matchfeed.common.models import Commentary, Match
from matchfeed.common.schemas import CommentaryCreate
from matchfeed.replay.engine import ReplayEngine
from matchfeed.websocket.events import CommentaryEvent
from matchfeed.websocket.manager import ConnectionManager, get_connection_manager

logger = get_logger("API")

router = APIRouter()


@router.get("/{match_id}/commentary", response_model=CommentaryList)
async def list_commentary(
    limit: int | None = Depends(page_limit),
    match: Match = Depends(get_match_or_404),
    db: AsyncSession = Depends(get_db),
) -> CommentaryList:
    """List a match's commentary that is already due, newest first."""
    cap = get_settings().max_list_limit
    result = await db.execute(
        select(Commentary)
        .where(
            Commentary.match_id == match.id,
            Commentary.created_at <= datetime.now(UTC),
        )
        .order_by(Commentary.created_at.desc(), Commentary.sequence.desc())
        .limit(min(limit or cap, cap))
    )
    return CommentaryList(data=[commentary_to_record(row) for row in result.scalars().all()])


@router.post(
    "/{match_id}/commentary",
    response_model=CommentaryEnvelope,
    status_code=status.HTTP_201_CREATED,
)
async def create_commentary(
    body: CommentaryCreate,
    match: Match = Depends(get_match_or_404),
    db: AsyncSession = Depends(get_db),
    manager: ConnectionManager = Depends(get_connection_manager),
    replay: ReplayEngine | None = Depends(get_replay_engine),
) -> CommentaryEnvelope:
    """Append a commentary row and push it to the match's subscribers.

    Raises:
        DuplicateSequenceError: The match already has this sequence (409).
    """
    match_id = match.id
    row = Commentary(
        match_id=match_id,
        minute=body.minute,
        sequence=body.sequence,
        period=body.period,
        event_type=body.event_type,
        actor=body.actor,
        team=body.team,
        message=body.message,
        extra_metadata=body.metadata,
        tags=body.tags,
    )
    db.add(row)
    try:
        await db.flush()
        # Claimed before commit: no poll can see the row unclaimed
        if replay is not None:
            replay.claim(row.id)
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise DuplicateSequenceError(
            "Commentary sequence already exists for this match",
            context={"match_id": match_id, "sequence": body.sequence},
        ) from exc
    await db.refresh(row)

    record = commentary_to_record(row)
    delivered = await manager.broadcast_to_match(
        record.match_id, CommentaryEvent(match_id=record.match_id, data=record)
    )
    logger.info(
        "Commentary created",
        extra={
            "data": {
                "match_id": record.match_id,
                "sequence": record.sequence,
                "subscribers_notified": delivered,
            }
        },
    )
    return CommentaryEnvelope(data=record)
