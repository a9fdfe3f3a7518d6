"""Seed file loading, feed expansion, and row construction.

Seed files come in three shapes:

    [ {commentary}, ... ]
    {"commentary": [...], "matches": [...]}
    {"feed": [...], "matches": [...]}

Seed matches carry an integer ``id`` that commentary entries reference
through ``matchId``. Those ids only exist inside the file; each seed match
becomes a new database row with its own UUID.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from sqlalchemy import delete

from matchfeed.common.config import Settings, get_settings
from matchfeed.common.database import session_scope
from matchfeed.common.exceptions import SeedDataError
from matchfeed.common.logging import get_logger
from matchfeed.common.match_status import get_match_status
from matchfeed.common.models import Commentary, Match, MatchStatus

logger = get_logger("SEED")

INSERT_CHUNK_SIZE = 500

# "Goal scored (Arsenal)" -> "Arsenal"
_TRAILING_TEAM = re.compile(r"\(([^)]+)\)\s*$")


@dataclass
class SeedData:
    feed: list[dict[str, Any]] = field(default_factory=list)
    matches: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class SeedResult:
    matches: int = 0
    commentary: int = 0
    dropped: int = 0


def _is_seed_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def parse_seed_data(parsed: Any) -> SeedData:
    """Normalize any accepted seed shape to ``SeedData``.

    Raises:
        SeedDataError: If no commentary list can be found.
    """
    if isinstance(parsed, list):
        return SeedData(feed=parsed, matches=[])

    if isinstance(parsed, dict):
        matches = parsed.get("matches") or []
        if isinstance(parsed.get("commentary"), list):
            return SeedData(feed=parsed["commentary"], matches=matches)
        if isinstance(parsed.get("feed"), list):
            return SeedData(feed=parsed["feed"], matches=matches)

    raise SeedDataError("Seed data must be an array or contain a commentary/feed array.")


def load_seed_data(path: str | Path) -> SeedData:
    """Read and parse a seed file.

    Raises:
        SeedDataError: If the file is missing, not JSON, or has no feed.
    """
    path = Path(path)
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise SeedDataError("Seed file not found", context={"path": str(path)}) from exc
    except json.JSONDecodeError as exc:
        raise SeedDataError(
            "Seed file is not valid JSON",
            context={"path": str(path), "line": exc.lineno},
        ) from exc
    return parse_seed_data(parsed)


def replace_trailing_team(message: Any, replacements: dict[str, str]) -> Any:
    """Swap a trailing ``(Team)`` suffix using ``replacements``.

    Messages without a suffix, or whose team is not in ``replacements``,
    are returned unchanged.
    """
    if not isinstance(message, str):
        return message
    found = _TRAILING_TEAM.search(message)
    if found is None:
        return message
    next_team = replacements.get(found.group(1))
    if not next_team:
        return message
    return message[: found.start()] + f"({next_team})"


def clone_commentary_entries(
    entries: list[dict[str, Any]],
    template_match: dict[str, Any],
    target_match: dict[str, Any],
) -> list[dict[str, Any]]:
    """Copy a template match's commentary onto another match of the same sport."""
    replacements = {
        template_match["homeTeam"]: target_match["homeTeam"],
        template_match["awayTeam"]: target_match["awayTeam"],
    }
    cloned = []
    for entry in entries:
        item = {**entry, "matchId": target_match["id"]}
        if entry.get("team") == template_match["homeTeam"]:
            item["team"] = target_match["homeTeam"]
        elif entry.get("team") == template_match["awayTeam"]:
            item["team"] = target_match["awayTeam"]
        item["message"] = replace_trailing_team(entry.get("message"), replacements)
        cloned.append(item)
    return cloned


def expand_feed_for_matches(
    feed: list[dict[str, Any]],
    seed_matches: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Give every seed match without commentary a copy of a same-sport feed.

    The template for a sport is the first seed match of that sport that has
    commentary of its own. Matches with no such template stay empty.
    """
    if not seed_matches:
        return feed

    by_match_id: dict[int, list[dict[str, Any]]] = {}
    for entry in feed:
        if _is_seed_id(entry.get("matchId")):
            by_match_id.setdefault(entry["matchId"], []).append(entry)

    template_by_sport: dict[str, dict[str, Any]] = {}
    for match in seed_matches:
        if match.get("sport") not in template_by_sport and match.get("id") in by_match_id:
            template_by_sport[match["sport"]] = match

    expanded = list(feed)
    for match in seed_matches:
        if match.get("id") in by_match_id:
            continue
        template = template_by_sport.get(match.get("sport"))
        if template is None:
            continue
        expanded.extend(clone_commentary_entries(by_match_id[template["id"]], template, match))
    return expanded


def build_matches(
    seed_matches: list[dict[str, Any]],
    now: datetime,
    settings: Settings,
) -> list[tuple[dict[str, Any], Match]]:
    """Create Match rows with staggered start times.

    Match ``i`` starts ``i * 60 + 10`` seconds after ``now``, so matches
    come on stream one minute apart.
    """
    duration = timedelta(minutes=settings.seed_match_duration_minutes)
    built = []
    for index, seed_match in enumerate(seed_matches):
        start_time = now + timedelta(seconds=index * 60 + 10)
        end_time = start_time + duration
        status = (
            MatchStatus.LIVE
            if settings.seed_force_live
            else get_match_status(start_time, end_time, now)
        )
        match = Match(
            sport=seed_match["sport"],
            home_team=seed_match["homeTeam"],
            away_team=seed_match["awayTeam"],
            start_time=start_time,
            end_time=end_time,
            home_score=seed_match.get("homeScore") or 0,
            away_score=seed_match.get("awayScore") or 0,
            status=status,
        )
        built.append((seed_match, match))
    return built


def build_commentary(
    feed: list[dict[str, Any]],
    matches_by_ref: dict[Any, Match],
    settings: Settings,
) -> tuple[list[Commentary], int]:
    """Create Commentary rows timed from their match's start.

    ``created_at = match.start_time + minute * seed_minute_offset_seconds``.
    Entries whose ``matchId`` resolves to no match are dropped.

    Returns:
        The rows and the number of entries dropped.
    """
    rows = []
    dropped = 0
    for entry in feed:
        match = matches_by_ref.get(entry.get("matchId"))
        if match is None:
            dropped += 1
            continue
        offset = (entry.get("minute") or 0) * settings.seed_minute_offset_seconds
        rows.append(
            Commentary(
                match_id=match.id,
                minute=entry.get("minute"),
                sequence=entry.get("sequence"),
                period=entry.get("period"),
                event_type=entry.get("eventType"),
                actor=entry.get("actor"),
                team=entry.get("team"),
                message=entry.get("message"),
                extra_metadata=entry.get("metadata"),
                tags=entry.get("tags"),
                created_at=match.start_time + timedelta(seconds=offset),
            )
        )
    return rows, dropped


async def seed_database(
    path: str | Path | None = None,
    now: datetime | None = None,
) -> SeedResult:
    """Replace all matches and commentary with the contents of a seed file.

    Args:
        path: Seed file (defaults to ``Settings.seed_data_file``).
        now: Reference time for match start times (defaults to the clock).
    """
    settings = get_settings()
    data = load_seed_data(path or settings.seed_data_file)
    feed = expand_feed_for_matches(data.feed, data.matches)
    now = now or datetime.now(UTC)
    result = SeedResult()

    async with session_scope() as db:
        await db.execute(delete(Commentary))
        await db.execute(delete(Match))
        logger.info("Cleared existing matches and commentary")

        if not data.matches:
            await db.commit()
            logger.warning("Seed file has no matches, nothing inserted")
            return result

        built = build_matches(data.matches, now, settings)
        db.add_all([match for _, match in built])
        await db.flush()
        result.matches = len(built)

        # Entries may reference the seed's integer id or a stored match id
        matches_by_ref: dict[Any, Match] = {}
        for seed_match, match in built:
            if _is_seed_id(seed_match.get("id")):
                matches_by_ref[seed_match["id"]] = match
            matches_by_ref[match.id] = match

        rows, result.dropped = build_commentary(feed, matches_by_ref, settings)
        for start in range(0, len(rows), INSERT_CHUNK_SIZE):
            db.add_all(rows[start : start + INSERT_CHUNK_SIZE])
            await db.flush()
        result.commentary = len(rows)

        await db.commit()

    logger.info(
        "Database seeding completed",
        extra={
            "data": {
                "matches": result.matches,
                "commentary": result.commentary,
                "dropped": result.dropped,
            }
        },
    )
    return result
