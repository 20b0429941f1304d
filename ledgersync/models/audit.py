"""
Audit Models for ledgersync

Every significant sync step is recorded as an event:
1. Traceability of each full-sync run (events share a correlation id)
2. Debugging information when a push or pull fails
3. A history the presentation layer can show in a "sync details" view

Audit events are append-only. They are never modified once written.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ledgersync.models.transaction import utc_now


class SyncEventType(str, Enum):
    """Types of events we audit."""
    # Full sync
    SYNC_STARTED = "sync_started"
    SYNC_SKIPPED = "sync_skipped"
    PUSH_COMPLETED = "push_completed"
    PUSH_FAILED = "push_failed"
    PULL_COMPLETED = "pull_completed"
    PULL_FAILED = "pull_failed"
    CONFLICT_RESOLVED = "conflict_resolved"

    # Change feed
    LISTENER_STARTED = "listener_started"
    LISTENER_FAILED = "listener_failed"
    CHANGE_FEED_APPLIED = "change_feed_applied"
    CHANGE_FEED_FAILED = "change_feed_failed"
    DOCUMENT_SKIPPED = "document_skipped"

    # Direct writes
    TRANSACTION_SYNCED = "transaction_synced"
    TRANSACTION_SYNC_FAILED = "transaction_sync_failed"

    # Maintenance
    ORPHANS_MIGRATED = "orphans_migrated"
    REMOTE_CLEARED = "remote_cleared"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class SyncEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=utc_now)

    event_type: SyncEventType
    severity: AuditSeverity = AuditSeverity.INFO

    user_id: Optional[str] = None
    transaction_id: Optional[UUID] = None
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="Shared by all events of one full-sync run"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "transaction_id": str(self.transaction_id) if self.transaction_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_document(self) -> dict:
        """Flat representation for document stores (details JSON-encoded)."""
        document = self.to_log_dict()
        document["details"] = json.dumps(self.details, default=str) if self.details else ""
        return document


class SyncEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = SyncEventBuilder.sync_started(user_id, correlation_id)
        event = SyncEventBuilder.push_failed(user_id, failed, message, correlation_id)
    """

    @staticmethod
    def sync_started(user_id: str, correlation_id: UUID, local_count: int) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.SYNC_STARTED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Full sync started with {local_count} local transactions",
            details={"local_count": local_count},
        )

    @staticmethod
    def sync_skipped(user_id: str) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.SYNC_SKIPPED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            description="Full sync requested while another run is in progress",
        )

    @staticmethod
    def push_completed(
        user_id: str,
        pushed: int,
        deleted: int,
        correlation_id: UUID,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.PUSH_COMPLETED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Pushed {pushed} transactions, deleted {deleted}",
            details={"pushed": pushed, "deleted": deleted},
        )

    @staticmethod
    def push_failed(
        user_id: str,
        failed_ids: list[UUID],
        error_message: str,
        correlation_id: UUID,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.PUSH_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Push phase failed for {len(failed_ids)} transactions",
            details={"failed_ids": [str(i) for i in failed_ids]},
            error_message=error_message,
        )

    @staticmethod
    def pull_completed(
        user_id: str,
        before: int,
        after: int,
        conflicts: int,
        correlation_id: UUID,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.PULL_COMPLETED,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Merge completed - {before} -> {after} transactions",
            details={"before": before, "after": after, "conflicts": conflicts},
        )

    @staticmethod
    def pull_failed(user_id: str, error_message: str, correlation_id: UUID) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.PULL_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Pull phase failed; local transactions left unchanged",
            error_message=error_message,
        )

    @staticmethod
    def conflict_resolved(
        user_id: str,
        transaction_id: UUID,
        winner: str,
        correlation_id: UUID,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.CONFLICT_RESOLVED,
            user_id=user_id,
            transaction_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Conflict resolved using {winner} version",
            details={"winner": winner},
        )

    @staticmethod
    def listener_started(user_id: str) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.LISTENER_STARTED,
            user_id=user_id,
            description="Real-time change feed subscription established",
        )

    @staticmethod
    def listener_failed(user_id: Optional[str], error_message: str) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.LISTENER_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description="Could not establish change feed subscription",
            error_message=error_message,
        )

    @staticmethod
    def change_feed_applied(
        user_id: str,
        added: int,
        modified: int,
        removed: int,
        skipped: int,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.CHANGE_FEED_APPLIED,
            user_id=user_id,
            description=f"Applied change feed batch (+{added} ~{modified} -{removed})",
            details={
                "added": added,
                "modified": modified,
                "removed": removed,
                "skipped": skipped,
            },
        )

    @staticmethod
    def change_feed_failed(user_id: str, error_message: str, batch_size: int) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.CHANGE_FEED_FAILED,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"Change feed batch of {batch_size} events was not applied",
            details={"batch_size": batch_size},
            error_message=error_message,
        )

    @staticmethod
    def document_skipped(user_id: str, document_id: str, error_message: str) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.DOCUMENT_SKIPPED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            description=f"Skipped malformed remote document {document_id[:8]}",
            details={"document_id": document_id},
            error_message=error_message,
        )

    @staticmethod
    def transaction_synced(user_id: str, transaction_id: UUID, operation: str) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.TRANSACTION_SYNCED,
            severity=AuditSeverity.DEBUG,
            user_id=user_id,
            transaction_id=transaction_id,
            description=f"Transaction {operation} confirmed by remote",
            details={"operation": operation},
        )

    @staticmethod
    def transaction_sync_failed(
        user_id: str,
        transaction_id: UUID,
        operation: str,
        error_message: str,
    ) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.TRANSACTION_SYNC_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            transaction_id=transaction_id,
            description=f"Transaction {operation} not confirmed; kept pending",
            details={"operation": operation},
            error_message=error_message,
        )

    @staticmethod
    def orphans_migrated(user_id: str, count: int, account_id: UUID) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.ORPHANS_MIGRATED,
            user_id=user_id,
            description=f"Migrated {count} orphaned transactions to default account",
            details={"count": count, "account_id": str(account_id)},
        )

    @staticmethod
    def remote_cleared(user_id: str, success: bool, error_message: Optional[str] = None) -> SyncEvent:
        return SyncEvent(
            event_type=SyncEventType.REMOTE_CLEARED,
            severity=AuditSeverity.INFO if success else AuditSeverity.ERROR,
            user_id=user_id,
            description="All transactions deleted" if success else "Deleting all transactions failed",
            error_message=error_message,
        )
