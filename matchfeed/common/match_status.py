"""Derive a match's lifecycle status from its scheduled window."""

from __future__ import annotations

from datetime import UTC, datetime

from matchfeed.common.models import Match, MatchStatus
from matchfeed.common.schemas import as_utc


def get_match_status(
    start_time: datetime,
    end_time: datetime | None,
    now: datetime | None = None,
) -> MatchStatus:
    """Return scheduled before start, finished at or after end, else live.

    A match without an end time never finishes on its own.
    """
    now = as_utc(now or datetime.now(UTC))
    if now < as_utc(start_time):
        return MatchStatus.SCHEDULED
    if end_time is not None and now >= as_utc(end_time):
        return MatchStatus.FINISHED
    return MatchStatus.LIVE


def sync_match_status(match: Match, now: datetime | None = None) -> bool:
    """Update ``match.status`` in place from its times.

    Returns:
        True if the status changed (the caller should commit).
    """
    next_status = get_match_status(match.start_time, match.end_time, now)
    if match.status != next_status:
        match.status = next_status
        return True
    return False
