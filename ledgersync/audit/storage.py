"""
Audit Storage

Audit logs are append-only - we never delete or modify them.
The in-memory implementation keeps a bounded history for the
"sync details" view of the host application.
"""

from abc import ABC, abstractmethod
from collections import deque
from typing import Optional
from uuid import UUID

from ledgersync.models.audit import SyncEvent


class AuditStorageInterface(ABC):
    """Abstract interface for audit log storage."""

    @abstractmethod
    async def append_event(self, event: SyncEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[SyncEvent]:
        """
        Get all events of one full-sync run.

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[SyncEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class InMemoryAuditStorage(AuditStorageInterface):
    """Bounded in-process audit history."""

    def __init__(self, max_events: Optional[int] = 1000):
        self._events: deque[SyncEvent] = deque(maxlen=max_events)

    async def append_event(self, event: SyncEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[SyncEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[SyncEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
