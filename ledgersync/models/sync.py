"""
Synchronization Models

Value types shared by the sync components:
1. Change-feed events delivered by the remote service
2. The five-state sync status shown to the presentation layer
3. Reports returned by every full-sync run
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ledgersync.models.transaction import Transaction, ensure_utc, utc_now


# =============================================================================
# LOCAL MUTATIONS AND REMOTE EVENTS
# =============================================================================

class SyncOperation(str, Enum):
    """Kind of local mutation pushed through the direct-write path."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ChangeType(str, Enum):
    """Kind of document change reported by the remote change feed."""
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


class ChangeEvent(BaseModel):
    """
    One document change from the remote change feed.

    The payload is the raw remote document; it is parsed by the listener so
    a malformed document can be skipped without aborting the batch.
    REMOVED events carry no payload.
    """

    change_type: ChangeType
    document_id: str = Field(..., min_length=1)
    data: Optional[dict[str, Any]] = None

    @classmethod
    def added(cls, document_id: str, data: dict[str, Any]) -> "ChangeEvent":
        return cls(change_type=ChangeType.ADDED, document_id=document_id, data=data)

    @classmethod
    def modified(cls, document_id: str, data: dict[str, Any]) -> "ChangeEvent":
        return cls(change_type=ChangeType.MODIFIED, document_id=document_id, data=data)

    @classmethod
    def removed(cls, document_id: str) -> "ChangeEvent":
        return cls(change_type=ChangeType.REMOVED, document_id=document_id)


# =============================================================================
# STATUS
# =============================================================================

class SyncStatusKind(str, Enum):
    """
    Display states, listed in precedence order.

    When several apply at once the earliest one is shown.
    """
    SYNCING = "syncing"
    ERROR = "error"
    PENDING_CHANGES = "pending_changes"
    SYNCED = "synced"
    NOT_SYNCED = "not_synced"


def format_relative_time(moment: datetime, now: Optional[datetime] = None) -> str:
    """Render a past moment as 'just now', '5m ago', '2h ago' or '3d ago'."""
    now = ensure_utc(now) if now else utc_now()
    seconds = (now - ensure_utc(moment)).total_seconds()

    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{int(seconds // 60)}m ago"
    if seconds < 86400:
        return f"{int(seconds // 3600)}h ago"
    return f"{int(seconds // 86400)}d ago"


class SyncStatus(BaseModel):
    """
    Derived, non-persisted sync status.

    Only the fields relevant to the kind are populated:
    SYNCED carries last_sync_date, PENDING_CHANGES carries pending_count,
    ERROR carries message.
    """

    kind: SyncStatusKind
    last_sync_date: Optional[datetime] = None
    pending_count: int = 0
    message: Optional[str] = None

    @classmethod
    def syncing(cls) -> "SyncStatus":
        return cls(kind=SyncStatusKind.SYNCING)

    @classmethod
    def error(cls, message: str) -> "SyncStatus":
        return cls(kind=SyncStatusKind.ERROR, message=message)

    @classmethod
    def pending_changes(cls, count: int) -> "SyncStatus":
        return cls(kind=SyncStatusKind.PENDING_CHANGES, pending_count=count)

    @classmethod
    def synced(cls, at: datetime) -> "SyncStatus":
        return cls(kind=SyncStatusKind.SYNCED, last_sync_date=at)

    @classmethod
    def not_synced(cls) -> "SyncStatus":
        return cls(kind=SyncStatusKind.NOT_SYNCED)

    def describe(self, now: Optional[datetime] = None) -> str:
        """Human-readable one-liner for the status indicator."""
        if self.kind == SyncStatusKind.SYNCING:
            return "Syncing..."
        if self.kind == SyncStatusKind.ERROR:
            return f"Error: {self.message}"
        if self.kind == SyncStatusKind.PENDING_CHANGES:
            return f"{self.pending_count} pending changes"
        if self.kind == SyncStatusKind.SYNCED:
            return f"Synced {format_relative_time(self.last_sync_date, now)}"
        return "Not synced"

    @property
    def description(self) -> str:
        return self.describe()


# =============================================================================
# FULL-SYNC RESULTS
# =============================================================================

class ConflictSide(str, Enum):
    """Which copy won a conflict."""
    LOCAL = "local"
    REMOTE = "remote"


class ResolvedConflict(BaseModel):
    """A transaction present on both sides with differing content."""

    transaction_id: UUID
    winner: ConflictSide
    local_created_at: datetime
    remote_created_at: datetime


class MergeResult(BaseModel):
    """Output of merging the local and remote transaction sets."""

    transactions: list[Transaction] = Field(default_factory=list)
    conflicts: list[ResolvedConflict] = Field(default_factory=list)
    local_only: int = 0
    remote_only: int = 0


class SyncOutcome(str, Enum):
    """Final state of one full-sync run."""
    SUCCEEDED = "succeeded"
    PUSH_FAILED = "push_failed"
    PULL_FAILED = "pull_failed"
    SKIPPED = "skipped"  # another run was already in progress


class SyncReport(BaseModel):
    """Summary of one full-sync run."""

    run_id: UUID = Field(default_factory=uuid4)
    outcome: SyncOutcome
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = None

    pushed: int = 0
    deleted: int = 0
    failed_ids: list[UUID] = Field(default_factory=list)
    merged: int = 0
    conflicts: list[ResolvedConflict] = Field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == SyncOutcome.SUCCEEDED
