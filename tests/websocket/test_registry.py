"""Tests for the match subscription registry."""

from __future__ import annotations

import pytest

from matchfeed.websocket.connection import Connection, ConnectionState
from matchfeed.websocket.registry import SubscriptionRegistry
from tests.factories import make_mock_ws


def open_connection() -> Connection:
    conn = Connection(make_mock_ws())
    conn.state = ConnectionState.OPEN
    return conn


@pytest.fixture
def registry() -> SubscriptionRegistry:
    return SubscriptionRegistry()


class TestSubscribe:
    def test_subscribe_records_both_sides(self, registry: SubscriptionRegistry):
        conn = open_connection()
        assert registry.subscribe("m1", conn) is True
        assert registry.subscribers("m1") == [conn]
        assert conn.subscriptions == {"m1"}

    def test_subscribe_is_idempotent(self, registry: SubscriptionRegistry):
        conn = open_connection()
        registry.subscribe("m1", conn)
        registry.subscribe("m1", conn)
        assert registry.subscribers("m1") == [conn]
        assert len(registry) == 1

    def test_subscribe_rejects_connection_that_is_not_open(self, registry: SubscriptionRegistry):
        conn = Connection(make_mock_ws())  # still CONNECTING
        assert registry.subscribe("m1", conn) is False
        assert "m1" not in registry
        assert conn.subscriptions == set()

    def test_subscribe_after_close_is_noop(self, registry: SubscriptionRegistry):
        conn = open_connection()
        conn.state = ConnectionState.CLOSED
        assert registry.subscribe("m1", conn) is False
        assert registry.subscribers("m1") == []

    def test_one_connection_many_matches(self, registry: SubscriptionRegistry):
        conn = open_connection()
        registry.subscribe("m1", conn)
        registry.subscribe("m2", conn)
        assert registry.match_ids() == {"m1", "m2"}
        assert conn.subscriptions == {"m1", "m2"}


class TestUnsubscribe:
    def test_unsubscribe_removes_both_sides(self, registry: SubscriptionRegistry):
        conn = open_connection()
        registry.subscribe("m1", conn)
        registry.unsubscribe("m1", conn)
        assert conn.subscriptions == set()
        assert registry.subscribers("m1") == []

    def test_last_unsubscribe_drops_the_match_entry(self, registry: SubscriptionRegistry):
        a, b = open_connection(), open_connection()
        registry.subscribe("m1", a)
        registry.subscribe("m1", b)

        registry.unsubscribe("m1", a)
        assert "m1" in registry

        registry.unsubscribe("m1", b)
        assert "m1" not in registry
        assert len(registry) == 0

    def test_unsubscribe_unknown_is_safe(self, registry: SubscriptionRegistry):
        conn = open_connection()
        registry.unsubscribe("never-subscribed", conn)
        assert len(registry) == 0

    def test_subscribe_unsubscribe_round_trip_restores_state(
        self, registry: SubscriptionRegistry
    ):
        other = open_connection()
        registry.subscribe("m2", other)
        before = (registry.match_ids(), set(other.subscriptions))

        conn = open_connection()
        registry.subscribe("m1", conn)
        registry.unsubscribe("m1", conn)

        assert (registry.match_ids(), set(other.subscriptions)) == before
        assert conn.subscriptions == set()


class TestCleanup:
    def test_cleanup_drops_every_subscription(self, registry: SubscriptionRegistry):
        conn = open_connection()
        other = open_connection()
        for match_id in ("m1", "m2", "m3"):
            registry.subscribe(match_id, conn)
        registry.subscribe("m2", other)

        registry.cleanup(conn)

        assert conn.subscriptions == set()
        assert registry.match_ids() == {"m2"}
        assert registry.subscribers("m2") == [other]

    def test_subscribers_returns_a_snapshot(self, registry: SubscriptionRegistry):
        conn = open_connection()
        registry.subscribe("m1", conn)
        snapshot = registry.subscribers("m1")
        registry.unsubscribe("m1", conn)
        assert snapshot == [conn]
