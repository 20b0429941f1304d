"""
Pending Change Tracker

Records which transaction ids have local changes the remote has not yet
confirmed. The set is idempotent: marking an id twice keeps one entry,
clearing an absent id is a no-op.

Every mutation republishes the current count to registered observers so
the status indicator stays current.

Each mark carries a sequence number. A full sync remembers the sequence
when it snapshots the set, and afterwards clears only the ids whose latest
mark it pushed; ids marked again while it ran stay pending.
"""

from typing import Callable, Iterable
from uuid import UUID

import structlog


PendingObserver = Callable[[int], None]


class PendingChangeTracker:
    """In-memory set of transaction ids awaiting remote confirmation."""

    def __init__(self):
        self._pending: set[UUID] = set()
        self._marked: dict[UUID, int] = {}
        self._sequence = 0
        self._observers: list[PendingObserver] = []
        self._logger = structlog.get_logger(__name__)

    def mark_pending(self, transaction_id: UUID) -> None:
        self._sequence += 1
        self._marked[transaction_id] = self._sequence
        self._pending.add(transaction_id)
        self._publish()

    def clear_pending(self, transaction_id: UUID) -> None:
        self._pending.discard(transaction_id)
        self._publish()

    def clear_all(self) -> None:
        self._pending.clear()
        self._marked.clear()
        self._publish()

    @property
    def sequence(self) -> int:
        """Sequence number of the most recent mark."""
        return self._sequence

    def marked_since(self, sequence: int) -> set[UUID]:
        """Ids marked after the given sequence number, confirmed or not."""
        return {t_id for t_id, mark in self._marked.items() if mark > sequence}

    def clear_confirmed(self, transaction_ids: Iterable[UUID], sequence: int) -> None:
        """
        Clear ids whose remote write was confirmed by a run that started at
        `sequence`. Ids marked again after that point stay pending.
        """
        for transaction_id in transaction_ids:
            if self._marked.get(transaction_id, 0) <= sequence:
                self._pending.discard(transaction_id)
        self._marked = {
            t_id: mark for t_id, mark in self._marked.items()
            if mark > sequence or t_id in self._pending
        }
        self._publish()

    @property
    def count(self) -> int:
        return len(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, transaction_id: UUID) -> bool:
        return transaction_id in self._pending

    def snapshot(self) -> frozenset[UUID]:
        """Ids pending right now; later mutations do not affect the result."""
        return frozenset(self._pending)

    def add_observer(self, observer: PendingObserver) -> None:
        self._observers.append(observer)

    def _publish(self) -> None:
        count = len(self._pending)
        for observer in list(self._observers):
            try:
                observer(count)
            except Exception as e:
                self._logger.error("pending_observer_failed", error=str(e))
