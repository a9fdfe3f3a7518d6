"""Replay engine that turns scheduled commentary rows into a live feed.

Every poll interval:
    1. Freeze ``now`` once for the whole cycle.
    2. Query rows with ``cursor < created_at <= now`` (oldest first).
    3. Release row i of N after ``(window / N) * i`` seconds, through
       ConnectionManager.broadcast_to_match().
    4. Advance the cursor to the frozen ``now``.

A failed query leaves the cursor where it was, so the same window is
retried on the next tick and no row is skipped. A successful query moves
the cursor past every row it returned, so no row is released twice.

Rows pushed straight to subscribers elsewhere (POST commentary) are
claimed before they are committed; polling skips claimed rows.

Started as an asyncio.Task during FastAPI app lifespan.

Usage:
    engine = ReplayEngine(manager, query_eligible_commentary, poll_interval_seconds=2)
    engine.start()
    ...
    await engine.stop()
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from matchfeed.common.logging import get_logger
from matchfeed.common.metrics import REPLAY_EVENTS_RELEASED_TOTAL, REPLAY_POLLS_TOTAL
from matchfeed.common.schemas import CommentaryRecord
from matchfeed.websocket.events import CommentaryEvent
from matchfeed.websocket.manager import ConnectionManager

logger = get_logger("REPLAY")

EligibleCommentaryQuery = Callable[[datetime, datetime], Awaitable[Sequence[CommentaryRecord]]]
Clock = Callable[[], datetime]

# Claims for rows that never show up in a poll (rolled back, or created
# behind the cursor) are forgotten oldest first past this many.
MAX_CLAIMED_ROWS = 10_000


def utc_now() -> datetime:
    return datetime.now(UTC)


def release_delays(count: int, window_seconds: float) -> list[float]:
    """Delays that spread ``count`` releases evenly across one window.

    The first release is immediate and the last lands one slot before the
    window closes, e.g. 5 rows in 2s -> [0.0, 0.4, 0.8, 1.2, 1.6].
    """
    if count <= 0:
        return []
    step = window_seconds / count
    return [step * i for i in range(count)]


@dataclass
class ReplayCursor:
    """Upper bound of the last successfully polled window."""

    last_checked: datetime

    def advance(self, now: datetime) -> None:
        # Monotonic: a clock that steps backwards never reopens a window
        if now > self.last_checked:
            self.last_checked = now


class ReplayEngine:
    """Polls for newly due commentary and releases it to subscribers.

    Args:
        manager: Broadcast target for released rows.
        query: Async callable ``(since, until) -> rows`` ordered by created_at.
        poll_interval_seconds: Time between polls.
        window_seconds: Span over which one poll's rows are spread
            (defaults to the poll interval).
        clock: Source of "now"; the cursor starts at its first reading.
    """

    def __init__(
        self,
        manager: ConnectionManager,
        query: EligibleCommentaryQuery,
        poll_interval_seconds: float = 2.0,
        window_seconds: float | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._manager = manager
        self._query = query
        self.poll_interval_seconds = poll_interval_seconds
        self.window_seconds = window_seconds if window_seconds is not None else poll_interval_seconds
        self._clock = clock
        self.cursor = ReplayCursor(last_checked=clock())
        self._task: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()
        self._claimed: OrderedDict[str, None] = OrderedDict()

    @property
    def pending_count(self) -> int:
        """Releases scheduled but not yet delivered."""
        return len(self._pending)

    def claim(self, commentary_id: str) -> None:
        """Take over delivery of one row so polling never releases it."""
        self._claimed[commentary_id] = None
        self._claimed.move_to_end(commentary_id)
        while len(self._claimed) > MAX_CLAIMED_ROWS:
            self._claimed.popitem(last=False)

    def is_claimed(self, commentary_id: str) -> bool:
        return commentary_id in self._claimed

    @property
    def claimed_count(self) -> int:
        return len(self._claimed)

    async def poll_once(self) -> int:
        """Run one poll cycle.

        Returns:
            Number of rows scheduled for release (0 on query failure).
        """
        now = self._clock()
        since = self.cursor.last_checked

        try:
            rows = await self._query(since, now)
        except Exception as exc:
            REPLAY_POLLS_TOTAL.labels(outcome="error").inc()
            logger.error(
                "Replay query failed, window will be retried",
                extra={
                    "data": {
                        "since": since.isoformat(),
                        "until": now.isoformat(),
                        "error": str(exc),
                    }
                },
            )
            return 0

        self.cursor.advance(now)
        REPLAY_POLLS_TOTAL.labels(outcome="ok").inc()

        due = [row for row in rows if row.id not in self._claimed]
        # The cursor has moved past these rows, so their claims are spent
        for row in rows:
            self._claimed.pop(row.id, None)

        for row, delay in zip(due, release_delays(len(due), self.window_seconds), strict=True):
            self._schedule(row, delay)

        if due:
            logger.debug(
                "Scheduled commentary releases",
                extra={"data": {"count": len(due), "until": now.isoformat()}},
            )
        return len(due)

    def _schedule(self, row: CommentaryRecord, delay: float) -> None:
        task = asyncio.create_task(self._release(row, delay))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _release(self, row: CommentaryRecord, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        try:
            await self._manager.broadcast_to_match(
                row.match_id, CommentaryEvent(match_id=row.match_id, data=row)
            )
        except Exception as exc:
            logger.error(
                "Commentary release failed",
                extra={"data": {"commentary_id": row.id, "error": str(exc)}},
            )
            return
        REPLAY_EVENTS_RELEASED_TOTAL.inc()

    async def run(self) -> None:
        """Poll at a fixed rate until cancelled."""
        loop = asyncio.get_running_loop()
        while True:
            started = loop.time()
            await self.poll_once()
            elapsed = loop.time() - started
            await asyncio.sleep(max(0.0, self.poll_interval_seconds - elapsed))

    def start(self) -> asyncio.Task:
        """Start the polling loop as a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
            logger.info(
                "Replay engine started",
                extra={
                    "data": {
                        "poll_interval_seconds": self.poll_interval_seconds,
                        "cursor": self.cursor.last_checked.isoformat(),
                    }
                },
            )
        return self._task

    async def stop(self) -> None:
        """Cancel the polling loop and every pending release."""
        tasks = list(self._pending)
        if self._task is not None:
            tasks.append(self._task)
            self._task = None
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Replay engine stopped")
