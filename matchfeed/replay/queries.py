"""Persistence reads used by the replay engine."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from matchfeed.common.database import session_scope
from matchfeed.common.models import Commentary
from matchfeed.common.schemas import CommentaryRecord


async def fetch_eligible_commentary(
    db: AsyncSession,
    since: datetime,
    until: datetime,
) -> list[CommentaryRecord]:
    """Return rows with ``since < created_at <= until``, oldest first.

    Rows sharing a timestamp come out in sequence order.
    """
    result = await db.execute(
        select(Commentary)
        .where(Commentary.created_at > since, Commentary.created_at <= until)
        .order_by(Commentary.created_at, Commentary.sequence)
    )
    return [CommentaryRecord.model_validate(row) for row in result.scalars().all()]


async def query_eligible_commentary(since: datetime, until: datetime) -> list[CommentaryRecord]:
    """Same as fetch_eligible_commentary, on a fresh session of the app database."""
    async with session_scope() as db:
        return await fetch_eligible_commentary(db, since, until)
