"""
Sync Engine Package

Pending change tracking, conflict resolution, the change feed listener,
the full-sync coordinator and the SyncService facade that ties them
together.
"""

from ledgersync.sync.coordinator import FullSyncCoordinator
from ledgersync.sync.listener import ChangeFeedListener, settle_account
from ledgersync.sync.migration import find_orphaned_transactions, migrate_orphaned_transactions
from ledgersync.sync.pending import PendingChangeTracker
from ledgersync.sync.resolver import merge_transactions, resolve_conflict
from ledgersync.sync.service import SyncService, create_sync_service
from ledgersync.sync.state import SyncState, derive_status

__all__ = [
    # Facade
    "SyncService",
    "create_sync_service",
    # Components
    "ChangeFeedListener",
    "FullSyncCoordinator",
    "PendingChangeTracker",
    "SyncState",
    # Pure helpers
    "derive_status",
    "find_orphaned_transactions",
    "merge_transactions",
    "migrate_orphaned_transactions",
    "resolve_conflict",
    "settle_account",
]
