"""
Change Feed Listener

Keeps the local store aligned with remote changes made on other devices.

One subscription per user session. Each delivered batch is applied in a
single local write batch, so observers see one notification per batch
and never a half-applied one:
- ADDED: inserted if no local record with that id exists
- MODIFIED: replaces the local record (inserted if absent)
- REMOVED: deletes the local record if present

Applying a batch is idempotent. Documents that cannot be parsed are
skipped and logged; the rest of the batch still applies. Records without
an account are assigned the user's default account before they settle.
"""

import asyncio
from typing import Optional, Sequence
from uuid import UUID

import structlog

from ledgersync.audit import SyncAuditLogger
from ledgersync.models.sync import ChangeEvent, ChangeType
from ledgersync.models.transaction import Transaction
from ledgersync.services.remote import (
    ChangeFeed,
    DocumentParseError,
    ListenerError,
    RemoteServiceError,
    RemoteTransactionService,
    document_to_transaction,
    with_timeout,
)
from ledgersync.store import LocalTransactionStore, StoreBatch, StoreError
from ledgersync.sync.state import SyncState


def settle_account(transaction: Transaction, batch: StoreBatch) -> Transaction:
    """
    Assign the default account to a record that has none.

    Raises:
        MissingDefaultAccountError: If the record needs it and none exists
    """
    if transaction.account_id is not None:
        return transaction
    return transaction.with_account(batch.require_default_account_id())


class ChangeFeedListener:
    """Subscribes to the remote change feed and applies it locally."""

    def __init__(
        self,
        remote: RemoteTransactionService,
        store: LocalTransactionStore,
        state: SyncState,
        user_id: Optional[str] = None,
        audit_logger: Optional[SyncAuditLogger] = None,
        subscribe_timeout: float = 15.0,
    ):
        self._remote = remote
        self._store = store
        self._state = state
        self.user_id = user_id
        self._audit_logger = audit_logger
        self._subscribe_timeout = subscribe_timeout
        self._feed: Optional[ChangeFeed] = None
        self._task: Optional[asyncio.Task] = None
        self._logger = structlog.get_logger(__name__)

    @property
    def is_listening(self) -> bool:
        return self._feed is not None and not self._feed.closed

    @property
    def task(self) -> Optional[asyncio.Task]:
        """Task draining the current feed (None before the first subscribe)."""
        return self._task

    async def subscribe(self) -> bool:
        """
        Open the change feed. Calling it while already listening is a no-op.

        Returns:
            True if the feed is open, False if it could not be established
            (the sync error is set and the listener stays inactive)
        """
        if self.is_listening:
            return True

        try:
            if not self.user_id:
                raise ListenerError("No authenticated user; change feed not started")
            feed = await with_timeout(
                self._remote.subscribe(self.user_id),
                self._subscribe_timeout,
                "Change feed subscription",
            )
        except RemoteServiceError as e:
            await self._fail(f"Real-time sync error: {e}")
            return False

        self._feed = feed
        self._task = asyncio.create_task(self._consume(feed))
        self._logger.info("change_feed_subscribed", user_id=self.user_id)
        if self._audit_logger:
            await self._audit_logger.log_listener_started(self.user_id)
        return True

    def unsubscribe(self) -> None:
        """Stop receiving new events. Batches already delivered still apply."""
        if self._feed is None:
            return
        self._feed.unsubscribe()
        self._feed = None
        self._logger.info("change_feed_unsubscribed", user_id=self.user_id)

    async def _consume(self, feed: ChangeFeed) -> None:
        try:
            async for batch in feed:
                await self.apply_batch(batch)
        except ListenerError as e:
            self._drop(feed)
            await self._fail(f"Real-time sync error: {e}")
        except Exception as e:
            self._drop(feed)
            self._logger.exception("change_feed_consumer_crashed", user_id=self.user_id)
            await self._fail(f"Real-time sync error: {e}")

    def _drop(self, feed: ChangeFeed) -> None:
        """Forget a feed that can no longer deliver so the next subscribe reopens it."""
        feed.unsubscribe()
        if self._feed is feed:
            self._feed = None

    async def _fail(self, message: str) -> None:
        self._state.record_error(message)
        self._logger.error("change_feed_failed", user_id=self.user_id, error=message)
        if self._audit_logger:
            await self._audit_logger.log_listener_failed(self.user_id, message)

    async def apply_batch(self, events: Sequence[ChangeEvent]) -> bool:
        """
        Apply one batch of remote events in a single local write batch.

        Returns:
            True if the batch was applied (even when nothing changed),
            False if it was rejected as a whole. The last sync time only
            moves when the batch changed the store.
        """
        if not events:
            return True

        added = modified = removed = 0
        skipped: list[tuple[str, str]] = []

        try:
            async with self._store.transaction() as batch:
                for event in events:
                    if event.change_type == ChangeType.REMOVED:
                        transaction_id = _parse_id(event.document_id)
                        if transaction_id is not None and batch.remove(transaction_id):
                            removed += 1
                        continue

                    try:
                        remote_txn = document_to_transaction(
                            event.data or {}, event.document_id, self.user_id
                        )
                    except DocumentParseError as e:
                        skipped.append((event.document_id, str(e)))
                        continue

                    if event.change_type == ChangeType.ADDED:
                        if remote_txn.id in batch:
                            continue
                        batch.insert(settle_account(remote_txn, batch))
                        added += 1
                    else:
                        settled = settle_account(remote_txn, batch)
                        if batch.get(settled.id) == settled:
                            continue
                        batch.upsert(settled)
                        modified += 1
        except StoreError as e:
            message = f"Failed to apply remote changes: {e}"
            self._state.record_error(message)
            self._logger.error(
                "change_feed_batch_rejected",
                user_id=self.user_id,
                batch_size=len(events),
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_change_feed_failed(self.user_id, message, len(events))
            return False

        for document_id, error in skipped:
            self._logger.warning("remote_document_skipped", document_id=document_id, error=error)
            if self._audit_logger:
                await self._audit_logger.log_document_skipped(self.user_id, document_id, error)

        if added or modified or removed:
            self._state.mark_synced()
        self._logger.info(
            "change_feed_applied",
            user_id=self.user_id,
            added=added,
            modified=modified,
            removed=removed,
            skipped=len(skipped),
        )
        if self._audit_logger:
            await self._audit_logger.log_change_feed_applied(
                self.user_id, added, modified, removed, len(skipped)
            )
        return True


def _parse_id(document_id: str) -> Optional[UUID]:
    try:
        return UUID(document_id)
    except ValueError:
        return None
