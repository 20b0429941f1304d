"""
Sync Audit Logger

Every significant sync step is logged:
1. Always to the structured local log (structlog, JSON lines)
2. To an audit storage backend when one is configured

The audit logger never raises: a failing audit backend is reported in the
local log and the sync flow carries on.
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledgersync.audit.storage import AuditStorageInterface
from ledgersync.models.audit import AuditSeverity, SyncEvent, SyncEventBuilder


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog and the stdlib root logger it renders through."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class SyncAuditLogger:
    """
    Central audit logging service for the sync engine.

    Typed helpers build the event through SyncEventBuilder and hand it to
    log(); callers never construct SyncEvent directly.
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("ledgersync.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: SyncEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity == AuditSeverity.ERROR:
            self._logger.error("sync_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("sync_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("sync_event", **log_dict)
        else:
            self._logger.info("sync_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_sync_started(self, user_id: str, correlation_id: UUID, local_count: int) -> None:
        await self.log(SyncEventBuilder.sync_started(user_id, correlation_id, local_count))

    async def log_sync_skipped(self, user_id: str) -> None:
        await self.log(SyncEventBuilder.sync_skipped(user_id))

    async def log_push_completed(
        self,
        user_id: str,
        pushed: int,
        deleted: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(SyncEventBuilder.push_completed(user_id, pushed, deleted, correlation_id))

    async def log_push_failed(
        self,
        user_id: str,
        failed_ids: list[UUID],
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(
            SyncEventBuilder.push_failed(user_id, failed_ids, error_message, correlation_id)
        )

    async def log_pull_completed(
        self,
        user_id: str,
        before: int,
        after: int,
        conflicts: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(
            SyncEventBuilder.pull_completed(user_id, before, after, conflicts, correlation_id)
        )

    async def log_pull_failed(self, user_id: str, error_message: str, correlation_id: UUID) -> None:
        await self.log(SyncEventBuilder.pull_failed(user_id, error_message, correlation_id))

    async def log_conflict_resolved(
        self,
        user_id: str,
        transaction_id: UUID,
        winner: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(
            SyncEventBuilder.conflict_resolved(user_id, transaction_id, winner, correlation_id)
        )

    async def log_listener_started(self, user_id: str) -> None:
        await self.log(SyncEventBuilder.listener_started(user_id))

    async def log_listener_failed(self, user_id: Optional[str], error_message: str) -> None:
        await self.log(SyncEventBuilder.listener_failed(user_id, error_message))

    async def log_change_feed_applied(
        self,
        user_id: str,
        added: int,
        modified: int,
        removed: int,
        skipped: int,
    ) -> None:
        await self.log(
            SyncEventBuilder.change_feed_applied(user_id, added, modified, removed, skipped)
        )

    async def log_change_feed_failed(self, user_id: str, error_message: str, batch_size: int) -> None:
        await self.log(SyncEventBuilder.change_feed_failed(user_id, error_message, batch_size))

    async def log_document_skipped(self, user_id: str, document_id: str, error_message: str) -> None:
        await self.log(SyncEventBuilder.document_skipped(user_id, document_id, error_message))

    async def log_transaction_synced(self, user_id: str, transaction_id: UUID, operation: str) -> None:
        await self.log(SyncEventBuilder.transaction_synced(user_id, transaction_id, operation))

    async def log_transaction_sync_failed(
        self,
        user_id: str,
        transaction_id: UUID,
        operation: str,
        error_message: str,
    ) -> None:
        await self.log(
            SyncEventBuilder.transaction_sync_failed(
                user_id, transaction_id, operation, error_message
            )
        )

    async def log_orphans_migrated(self, user_id: str, count: int, account_id: UUID) -> None:
        await self.log(SyncEventBuilder.orphans_migrated(user_id, count, account_id))

    async def log_remote_cleared(
        self,
        user_id: str,
        success: bool,
        error_message: Optional[str] = None,
    ) -> None:
        await self.log(SyncEventBuilder.remote_cleared(user_id, success, error_message))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a full-sync run and pass it to every
    event the run records.
    """
    return uuid4()
