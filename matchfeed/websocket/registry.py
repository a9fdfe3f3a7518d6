"""Match id -> subscribed connections.

The registry holds non-owning references: each Connection owns its own
``subscriptions`` set and the registry mirrors it. Two invariants hold
after every call:

- a connection is in ``subscribers(M)`` iff ``M in connection.subscriptions``
- no match id maps to an empty set

Methods never await, so on a single event loop each call runs to
completion without interleaving with other handlers.
"""

from __future__ import annotations

from matchfeed.common.metrics import WS_SUBSCRIPTIONS_ACTIVE
from matchfeed.websocket.connection import Connection


class SubscriptionRegistry:
    """Tracks which connections want events for which match."""

    def __init__(self) -> None:
        self._subscribers: dict[str, set[Connection]] = {}

    def subscribe(self, match_id: str, connection: Connection) -> bool:
        """Add ``connection`` to ``match_id``. Idempotent.

        Returns:
            False if the connection is not OPEN (nothing is recorded).
        """
        if not connection.is_open:
            return False
        self._subscribers.setdefault(match_id, set()).add(connection)
        connection.subscriptions.add(match_id)
        WS_SUBSCRIPTIONS_ACTIVE.set(len(self._subscribers))
        return True

    def unsubscribe(self, match_id: str, connection: Connection) -> None:
        """Remove ``connection`` from ``match_id``; no error if absent."""
        connection.subscriptions.discard(match_id)
        subscribers = self._subscribers.get(match_id)
        if subscribers is None:
            return
        subscribers.discard(connection)
        if not subscribers:
            del self._subscribers[match_id]
        WS_SUBSCRIPTIONS_ACTIVE.set(len(self._subscribers))

    def cleanup(self, connection: Connection) -> None:
        """Drop every subscription held by a closing connection."""
        for match_id in list(connection.subscriptions):
            self.unsubscribe(match_id, connection)
        connection.subscriptions.clear()

    def subscribers(self, match_id: str) -> list[Connection]:
        """Snapshot of the connections subscribed to ``match_id``."""
        return list(self._subscribers.get(match_id, ()))

    def match_ids(self) -> set[str]:
        return set(self._subscribers)

    def __contains__(self, match_id: object) -> bool:
        return match_id in self._subscribers

    def __len__(self) -> int:
        return len(self._subscribers)
