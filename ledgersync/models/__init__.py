"""
Data Models Package

Pydantic models shared by the local store, the remote service and the
sync engine.
"""

from ledgersync.models.account import Account, AccountType, select_default_account
from ledgersync.models.audit import (
    AuditSeverity,
    SyncEvent,
    SyncEventBuilder,
    SyncEventType,
)
from ledgersync.models.sync import (
    ChangeEvent,
    ChangeType,
    ConflictSide,
    MergeResult,
    ResolvedConflict,
    SyncOperation,
    SyncOutcome,
    SyncReport,
    SyncStatus,
    SyncStatusKind,
    format_relative_time,
)
from ledgersync.models.transaction import (
    ReceiptItem,
    Transaction,
    ensure_utc,
    utc_now,
)

__all__ = [
    # Transaction models
    "ReceiptItem",
    "Transaction",
    "ensure_utc",
    "utc_now",
    # Account models
    "Account",
    "AccountType",
    "select_default_account",
    # Sync models
    "ChangeEvent",
    "ChangeType",
    "ConflictSide",
    "MergeResult",
    "ResolvedConflict",
    "SyncOperation",
    "SyncOutcome",
    "SyncReport",
    "SyncStatus",
    "SyncStatusKind",
    "format_relative_time",
    # Audit models
    "AuditSeverity",
    "SyncEvent",
    "SyncEventBuilder",
    "SyncEventType",
]
