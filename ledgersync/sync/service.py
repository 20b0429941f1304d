"""
Sync Service

The facade a host application talks to. It wires the pending tracker,
the change feed listener and the full-sync coordinator around one local
store and one remote service, and defines the end-to-end flows for:
1. Session lifecycle (start, stop, resume, connectivity restored)
2. Direct writes (local mutation, then an immediate remote write)
3. Full reconciliation (force_sync and the periodic auto-sync timer)
4. Maintenance (delete-all, orphaned transaction migration)

Everything runs on one asyncio event loop. The local store's write lock is
the only serialization point for local data; the coordinator's guard keeps
at most one full sync in flight.
"""

import asyncio
from contextlib import suppress
from datetime import datetime
from typing import Callable, Optional

import structlog

from ledgersync.audit import AuditStorageInterface, InMemoryAuditStorage, SyncAuditLogger
from ledgersync.config import Settings, SyncSettings, get_settings
from ledgersync.models.sync import SyncOperation, SyncReport, SyncStatus
from ledgersync.models.transaction import Transaction
from ledgersync.services.remote import (
    RemoteServiceError,
    RemoteTransactionService,
    get_firestore_service,
    with_timeout,
)
from ledgersync.store import JsonFileTransactionStore, LocalTransactionStore, StoreError
from ledgersync.sync.coordinator import FullSyncCoordinator
from ledgersync.sync.listener import ChangeFeedListener, settle_account
from ledgersync.sync.migration import migrate_orphaned_transactions as migrate_orphans
from ledgersync.sync.pending import PendingChangeTracker
from ledgersync.sync.state import SyncState


StatusObserver = Callable[[SyncStatus], None]


class SyncService:
    """
    Transaction synchronization for one signed-in user.

    Construct it explicitly (or through create_sync_service) and keep one
    instance per session.
    """

    def __init__(
        self,
        remote: RemoteTransactionService,
        store: LocalTransactionStore,
        user_id: Optional[str] = None,
        settings: Optional[SyncSettings] = None,
        audit_logger: Optional[SyncAuditLogger] = None,
    ):
        self._remote = remote
        self._store = store
        self._settings = settings or get_settings().sync
        self._audit_logger = audit_logger
        self._logger = structlog.get_logger(__name__)

        self.tracker = PendingChangeTracker()
        self.state = SyncState()
        self.listener = ChangeFeedListener(
            remote,
            store,
            self.state,
            user_id=user_id,
            audit_logger=audit_logger,
            subscribe_timeout=self._settings.remote_call_timeout_seconds,
        )
        self.coordinator = FullSyncCoordinator(
            remote,
            store,
            self.tracker,
            self.state,
            settings=self._settings,
            user_id=user_id,
            audit_logger=audit_logger,
        )

        self._user_id = user_id
        self._timer: Optional[asyncio.Task] = None
        self._status_observers: list[StatusObserver] = []

        self.tracker.add_observer(lambda _count: self._publish_status())
        self.state.add_observer(self._publish_status)

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @user_id.setter
    def user_id(self, value: Optional[str]) -> None:
        self._user_id = value
        self.listener.user_id = value
        self.coordinator.user_id = value

    @property
    def store(self) -> LocalTransactionStore:
        return self._store

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Open the change feed, start the auto-sync timer, sync existing data."""
        if self.is_running:
            return

        await self.listener.subscribe()
        self._timer = asyncio.create_task(self._auto_sync_loop())
        self._logger.info(
            "sync_service_started",
            user_id=self._user_id,
            interval=self._settings.auto_sync_interval_seconds,
        )

        if self._store.all():
            await self.force_sync()

    async def stop(self) -> None:
        """Cancel the timer, close the change feed and let queued batches apply."""
        if self._timer is not None:
            self._timer.cancel()
            with suppress(asyncio.CancelledError):
                await self._timer
            self._timer = None

        listener_task = self.listener.task
        self.listener.unsubscribe()
        if listener_task is not None:
            await listener_task
        self._logger.info("sync_service_stopped", user_id=self._user_id)

    async def on_resume(self) -> SyncReport:
        """App returned to the foreground."""
        return await self.force_sync()

    async def on_connectivity_restored(self) -> SyncReport:
        """Network came back: reopen a broken change feed, then reconcile."""
        if not self.listener.is_listening:
            await self.listener.subscribe()
        return await self.force_sync()

    async def _auto_sync_loop(self) -> None:
        interval = self._settings.auto_sync_interval_seconds
        while True:
            await asyncio.sleep(interval)
            if self.tracker.count == 0 or self.state.is_syncing:
                continue
            try:
                await self.coordinator.run()
            except Exception as e:
                self._logger.exception("auto_sync_failed", error=str(e))

    # -------------------------------------------------------------------------
    # Sync
    # -------------------------------------------------------------------------

    async def force_sync(self) -> SyncReport:
        return await self.coordinator.run()

    async def record_change(self, transaction: Transaction, operation: SyncOperation) -> bool:
        """
        Apply a local create/update/delete and write it through to the remote.

        The change is marked pending before the remote write and cleared only
        once the write is confirmed; an unconfirmed write stays pending for
        the next full sync.

        Returns:
            True if the remote write was confirmed
        """
        try:
            async with self._store.transaction() as batch:
                if operation == SyncOperation.DELETE:
                    batch.remove(transaction.id)
                else:
                    transaction = settle_account(transaction, batch)
                    batch.upsert(transaction)
        except StoreError as e:
            message = f"Failed to save transaction locally: {e}"
            self.state.record_error(message)
            self._logger.error(
                "local_write_failed",
                transaction_id=str(transaction.id),
                operation=operation.value,
                error=str(e),
            )
            return False

        self.tracker.mark_pending(transaction.id)
        return await self._write_through(transaction, operation)

    async def _write_through(self, transaction: Transaction, operation: SyncOperation) -> bool:
        if not self._user_id:
            self._logger.info(
                "remote_write_deferred",
                transaction_id=str(transaction.id),
                reason="no_authenticated_user",
            )
            return False

        timeout = self._settings.remote_call_timeout_seconds
        try:
            if operation == SyncOperation.DELETE:
                await with_timeout(
                    self._remote.delete(transaction.id, self._user_id),
                    timeout,
                    f"Delete of {transaction.short_id()}",
                )
            else:
                await with_timeout(
                    self._remote.upsert(transaction, self._user_id),
                    timeout,
                    f"Upload of {transaction.short_id()}",
                )
        except RemoteServiceError as e:
            message = f"Failed to sync transaction: {e}"
            self.state.record_error(message)
            self._logger.warning(
                "transaction_sync_failed",
                transaction_id=str(transaction.id),
                operation=operation.value,
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_transaction_sync_failed(
                    self._user_id, transaction.id, operation.value, str(e)
                )
            return False

        self.tracker.clear_pending(transaction.id)
        self._logger.info(
            "transaction_synced",
            transaction_id=str(transaction.id),
            operation=operation.value,
        )
        if self._audit_logger:
            await self._audit_logger.log_transaction_synced(
                self._user_id, transaction.id, operation.value
            )
        return True

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def status(self) -> SyncStatus:
        return self.state.status(self.tracker.count)

    def pending_count(self) -> int:
        return self.tracker.count

    def last_sync_date(self) -> Optional[datetime]:
        return self.state.last_sync_date

    def clear_error(self) -> None:
        self.state.clear_error()

    def add_status_observer(self, observer: StatusObserver) -> None:
        self._status_observers.append(observer)

    def _publish_status(self) -> None:
        status = self.status()
        for observer in list(self._status_observers):
            try:
                observer(status)
            except Exception as e:
                self._logger.error("status_observer_failed", error=str(e))

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def delete_all_transactions(self) -> tuple[bool, str]:
        """
        Delete every transaction remotely, then locally.

        The local collection is only cleared after the remote delete is
        confirmed.

        Returns:
            (success, message)
        """
        if not self._user_id:
            return False, "No authenticated user"

        try:
            count = await with_timeout(
                self._remote.clear_all(self._user_id),
                self._settings.remote_call_timeout_seconds,
                "Remote delete-all",
            )
        except RemoteServiceError as e:
            self._logger.error("remote_clear_failed", user_id=self._user_id, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_remote_cleared(self._user_id, False, str(e))
            return False, f"Failed to delete transactions: {e}"

        try:
            await self._store.clear()
        except StoreError as e:
            self._logger.error("local_clear_failed", user_id=self._user_id, error=str(e))
            return False, f"Remote transactions deleted but local store could not be cleared: {e}"

        self.tracker.clear_all()
        self._logger.info("all_transactions_deleted", user_id=self._user_id, count=count)
        if self._audit_logger:
            await self._audit_logger.log_remote_cleared(self._user_id, True)
        return True, f"Deleted {count} transactions"

    async def migrate_orphaned_transactions(self) -> int:
        """
        Move transactions without a valid account to the default account.

        Each migrated record is written through to the remote like any
        other update.

        Returns:
            Number of migrated transactions
        """
        try:
            migrated = await migrate_orphans(self._store)
        except StoreError as e:
            message = f"Failed to migrate orphaned transactions: {e}"
            self.state.record_error(message)
            self._logger.error("orphan_migration_failed", error=str(e))
            return 0

        if not migrated:
            return 0

        for transaction in migrated:
            self.tracker.mark_pending(transaction.id)
        await asyncio.gather(*(
            self._write_through(transaction, SyncOperation.UPDATE)
            for transaction in migrated
        ))

        account_id = migrated[0].account_id
        self._logger.info("orphans_migrated", count=len(migrated), account_id=str(account_id))
        if self._audit_logger:
            await self._audit_logger.log_orphans_migrated(
                self._user_id or "", len(migrated), account_id
            )
        return len(migrated)


def create_sync_service(
    user_id: str,
    remote: Optional[RemoteTransactionService] = None,
    store: Optional[LocalTransactionStore] = None,
    settings: Optional[Settings] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
) -> SyncService:
    """
    Factory function to create a fully wired sync service.

    Args:
        user_id: Authenticated user whose transactions are synchronized
        remote: Remote backend; Firestore (from settings) when omitted
        store: Local store; the JSON file store at SYNC_LOCAL_STORE_PATH
               when omitted
        settings: Root settings; get_settings() when omitted
        audit_storage: Where audit events are kept; in memory when omitted
    """
    settings = settings or get_settings()
    sync_settings = settings.sync

    if remote is None:
        remote = get_firestore_service(settings.firestore)
    if store is None:
        store = JsonFileTransactionStore(sync_settings.local_store_path, user_id=user_id)

    audit_logger = SyncAuditLogger(audit_storage or InMemoryAuditStorage())

    return SyncService(
        remote,
        store,
        user_id=user_id,
        settings=sync_settings,
        audit_logger=audit_logger,
    )
