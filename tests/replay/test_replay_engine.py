"""Tests for the replay engine: cursor, pacing, and failure handling."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from matchfeed.replay.engine import MAX_CLAIMED_ROWS, ReplayCursor, ReplayEngine, release_delays
from matchfeed.websocket.events import CommentaryEvent
from tests.factories import make_commentary_record

T0 = datetime(2026, 3, 1, 19, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def tick(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


def make_manager() -> AsyncMock:
    manager = AsyncMock()
    manager.broadcast_to_match = AsyncMock(return_value=1)
    return manager


class TestReleaseDelays:
    def test_five_rows_over_two_seconds(self):
        assert release_delays(5, 2.0) == pytest.approx([0.0, 0.4, 0.8, 1.2, 1.6])

    def test_single_row_is_immediate(self):
        assert release_delays(1, 2.0) == [0.0]

    def test_no_rows(self):
        assert release_delays(0, 2.0) == []

    def test_delays_stay_inside_window(self):
        delays = release_delays(7, 3.0)
        assert delays == sorted(delays)
        assert all(0 <= d < 3.0 for d in delays)


class TestReplayCursor:
    def test_advance_moves_forward(self):
        cursor = ReplayCursor(last_checked=T0)
        cursor.advance(T0 + timedelta(seconds=2))
        assert cursor.last_checked == T0 + timedelta(seconds=2)

    def test_advance_never_moves_back(self):
        cursor = ReplayCursor(last_checked=T0)
        cursor.advance(T0 - timedelta(seconds=5))
        assert cursor.last_checked == T0


@pytest.mark.asyncio
class TestPollOnce:
    async def test_cursor_starts_at_construction_time(self):
        clock = FakeClock()
        engine = ReplayEngine(make_manager(), AsyncMock(return_value=[]), clock=clock)
        assert engine.cursor.last_checked == T0

    async def test_queries_half_open_window_and_advances(self):
        clock = FakeClock()
        query = AsyncMock(return_value=[])
        engine = ReplayEngine(make_manager(), query, clock=clock)

        now = clock.tick(2)
        await engine.poll_once()

        query.assert_awaited_once_with(T0, now)
        assert engine.cursor.last_checked == now

    async def test_consecutive_windows_are_contiguous(self):
        clock = FakeClock()
        query = AsyncMock(return_value=[])
        engine = ReplayEngine(make_manager(), query, clock=clock)

        first = clock.tick(2)
        await engine.poll_once()
        second = clock.tick(2)
        await engine.poll_once()

        assert [c.args for c in query.await_args_list] == [(T0, first), (first, second)]

    async def test_failed_query_retries_same_window(self):
        clock = FakeClock()
        query = AsyncMock(side_effect=[RuntimeError("db down"), []])
        engine = ReplayEngine(make_manager(), query, clock=clock)

        clock.tick(2)
        assert await engine.poll_once() == 0
        assert engine.cursor.last_checked == T0

        retry_until = clock.tick(2)
        await engine.poll_once()

        # The retry covers the failed window plus the new one
        assert query.await_args_list[1].args == (T0, retry_until)
        assert engine.cursor.last_checked == retry_until

    async def test_row_due_during_failed_poll_is_released_exactly_once(self):
        clock = FakeClock()
        manager = make_manager()
        stored = [
            make_commentary_record(sequence=1, created_at=T0 + timedelta(seconds=1)),
            make_commentary_record(sequence=2, created_at=T0 + timedelta(seconds=3)),
        ]
        failures = [RuntimeError("db down")]

        async def query(since, until):
            if failures:
                raise failures.pop()
            return [row for row in stored if since < row.created_at <= until]

        engine = ReplayEngine(manager, query, window_seconds=0.0, clock=clock)

        clock.tick(2)
        await engine.poll_once()
        clock.tick(2)
        await engine.poll_once()
        clock.tick(2)
        await engine.poll_once()
        await asyncio.sleep(0.01)

        released = [c.args[1].data.sequence for c in manager.broadcast_to_match.await_args_list]
        assert released == [1, 2]

    async def test_rows_released_once_in_order(self):
        clock = FakeClock()
        manager = make_manager()
        rows = [
            make_commentary_record(match_id="m1", sequence=i, created_at=T0 + timedelta(seconds=i))
            for i in (1, 2, 3)
        ]
        query = AsyncMock(side_effect=[rows, []])
        engine = ReplayEngine(manager, query, window_seconds=0.03, clock=clock)

        clock.tick(2)
        assert await engine.poll_once() == 3
        assert engine.pending_count == 3
        await asyncio.sleep(0.1)

        clock.tick(2)
        await engine.poll_once()
        await asyncio.sleep(0.05)

        assert engine.pending_count == 0
        assert manager.broadcast_to_match.await_count == 3
        released = [c.args[1] for c in manager.broadcast_to_match.await_args_list]
        assert all(isinstance(event, CommentaryEvent) for event in released)
        assert [event.data.sequence for event in released] == [1, 2, 3]
        assert {c.args[0] for c in manager.broadcast_to_match.await_args_list} == {"m1"}

    async def test_first_row_of_a_batch_is_released_immediately(self):
        clock = FakeClock()
        manager = make_manager()
        rows = [make_commentary_record(sequence=i) for i in (1, 2)]
        engine = ReplayEngine(
            manager, AsyncMock(return_value=rows), window_seconds=10.0, clock=clock
        )

        clock.tick(2)
        await engine.poll_once()
        await asyncio.sleep(0.01)

        assert manager.broadcast_to_match.await_count == 1
        await engine.stop()
        assert engine.pending_count == 0

    async def test_broadcast_failure_does_not_break_other_releases(self):
        clock = FakeClock()
        manager = make_manager()
        manager.broadcast_to_match.side_effect = [RuntimeError("boom"), 1]
        rows = [make_commentary_record(sequence=i) for i in (1, 2)]
        engine = ReplayEngine(
            manager, AsyncMock(return_value=rows), window_seconds=0.02, clock=clock
        )

        clock.tick(2)
        await engine.poll_once()
        await asyncio.sleep(0.05)

        assert manager.broadcast_to_match.await_count == 2
        assert engine.pending_count == 0


@pytest.mark.asyncio
class TestClaims:
    async def test_claimed_row_is_skipped(self):
        clock = FakeClock()
        manager = make_manager()
        posted = make_commentary_record(sequence=1, created_at=T0 + timedelta(seconds=1))
        other = make_commentary_record(sequence=2, created_at=T0 + timedelta(seconds=1))
        engine = ReplayEngine(
            manager, AsyncMock(return_value=[posted, other]), window_seconds=0.0, clock=clock
        )

        engine.claim(posted.id)
        clock.tick(2)
        assert await engine.poll_once() == 1
        await asyncio.sleep(0.01)

        released = [c.args[1].data.id for c in manager.broadcast_to_match.await_args_list]
        assert released == [other.id]

    async def test_claim_is_spent_once_the_row_is_seen(self):
        clock = FakeClock()
        row = make_commentary_record(sequence=1)
        engine = ReplayEngine(make_manager(), AsyncMock(return_value=[row]), clock=clock)

        engine.claim(row.id)
        clock.tick(2)
        await engine.poll_once()

        assert not engine.is_claimed(row.id)
        assert engine.claimed_count == 0

    async def test_claims_are_bounded(self):
        engine = ReplayEngine(make_manager(), AsyncMock(return_value=[]), clock=FakeClock())

        for i in range(MAX_CLAIMED_ROWS + 5):
            engine.claim(f"row-{i}")

        assert engine.claimed_count == MAX_CLAIMED_ROWS
        assert not engine.is_claimed("row-0")
        assert engine.is_claimed(f"row-{MAX_CLAIMED_ROWS + 4}")


@pytest.mark.asyncio
class TestLifecycle:
    async def test_start_polls_repeatedly_and_stop_cancels(self):
        query = AsyncMock(return_value=[])
        engine = ReplayEngine(make_manager(), query, poll_interval_seconds=0.01)

        task = engine.start()
        assert engine.start() is task
        await asyncio.sleep(0.05)
        await engine.stop()

        assert query.await_count >= 2
        assert task.done()

    async def test_stop_cancels_pending_releases(self):
        clock = FakeClock()
        manager = make_manager()
        rows = [make_commentary_record(sequence=i) for i in (1, 2, 3)]
        engine = ReplayEngine(
            manager, AsyncMock(return_value=rows), window_seconds=60.0, clock=clock
        )

        clock.tick(2)
        await engine.poll_once()
        await asyncio.sleep(0)
        await engine.stop()
        await asyncio.sleep(0)

        assert engine.pending_count == 0
        assert manager.broadcast_to_match.await_count <= 1
