"""
Sync state and status derivation.

SyncState holds the mutable flags shared by the coordinator, the change
feed listener and the service facade. The displayed status is never
stored; it is derived from these flags and the pending count on demand.
"""

from datetime import datetime
from typing import Callable, Optional

import structlog

from ledgersync.models.sync import SyncStatus
from ledgersync.models.transaction import utc_now


StateObserver = Callable[[], None]


def derive_status(
    is_syncing: bool,
    sync_error: Optional[str],
    pending_count: int,
    last_sync_date: Optional[datetime],
) -> SyncStatus:
    """
    Collapse the sync flags into one status.

    Precedence: syncing, error, pending changes, synced, not synced.
    """
    if is_syncing:
        return SyncStatus.syncing()
    if sync_error:
        return SyncStatus.error(sync_error)
    if pending_count > 0:
        return SyncStatus.pending_changes(pending_count)
    if last_sync_date is not None:
        return SyncStatus.synced(last_sync_date)
    return SyncStatus.not_synced()


class SyncState:
    """
    Mutable sync flags.

    Only touched from the event loop thread, so plain attributes suffice;
    begin_sync() checks and sets the syncing flag without awaiting.
    """

    def __init__(self):
        self.is_syncing = False
        self.last_sync_date: Optional[datetime] = None
        self.sync_error: Optional[str] = None
        self._observers: list[StateObserver] = []
        self._logger = structlog.get_logger(__name__)

    def begin_sync(self) -> bool:
        """Claim the full-sync slot. Returns False if a run already holds it."""
        if self.is_syncing:
            return False
        self.is_syncing = True
        self.sync_error = None
        self._publish()
        return True

    def finish_sync(self, error: Optional[str] = None) -> None:
        self.is_syncing = False
        if error:
            self.sync_error = error
        else:
            self.sync_error = None
            self.last_sync_date = utc_now()
        self._publish()

    def mark_synced(self) -> None:
        self.last_sync_date = utc_now()
        self._publish()

    def record_error(self, message: str) -> None:
        self.sync_error = message
        self._publish()

    def clear_error(self) -> None:
        if self.sync_error is not None:
            self.sync_error = None
            self._publish()

    def status(self, pending_count: int) -> SyncStatus:
        return derive_status(
            self.is_syncing,
            self.sync_error,
            pending_count,
            self.last_sync_date,
        )

    def add_observer(self, observer: StateObserver) -> None:
        self._observers.append(observer)

    def _publish(self) -> None:
        for observer in list(self._observers):
            try:
                observer()
            except Exception as e:
                self._logger.error("state_observer_failed", error=str(e))
