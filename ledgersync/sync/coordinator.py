"""
Full Sync Coordinator

Runs one push-then-pull reconciliation between the local store and the
remote collection.

Flow:
1. Guard: if a run is already in progress, return SKIPPED immediately
2. Push: upsert local transactions (all, or only pending ones depending on
   the push strategy) and delete pending ids that no longer exist locally.
   Writes run concurrently, each bounded by the remote call timeout.
   Any failure aborts the run and leaves the failed ids pending.
3. Pull: fetch the remote collection, then merge it with the local store
   inside one local write batch (later creation timestamp wins, ties go
   to the remote copy). Both sides are compared after the default account
   is filled in. Records changed locally while the run was in flight keep
   their local state. A failed fetch leaves the local store untouched.
4. On success: clear the pushed ids from the pending set unless they were
   marked again meanwhile, record the sync time, clear the error, then
   re-mark records the remote lacks (local-only ones and
   conflicts won by the local copy) as pending so the next cycle pushes
   them.

Failures are reported through SyncReport and the shared SyncState; remote
and local-store errors never propagate to the caller.
"""

import asyncio
from typing import Optional
from uuid import UUID

import structlog

from ledgersync.audit import SyncAuditLogger, create_correlation_id
from ledgersync.config import SyncSettings
from ledgersync.models.sync import ConflictSide, SyncOutcome, SyncReport
from ledgersync.models.transaction import Transaction, utc_now
from ledgersync.services.remote import (
    RemoteServiceError,
    RemoteTransactionService,
    with_timeout,
)
from ledgersync.store import LocalTransactionStore, StoreError
from ledgersync.sync.listener import settle_account
from ledgersync.sync.pending import PendingChangeTracker
from ledgersync.sync.resolver import merge_transactions
from ledgersync.sync.state import SyncState


class FullSyncCoordinator:
    """Push-then-pull reconciliation, at most one run at a time."""

    def __init__(
        self,
        remote: RemoteTransactionService,
        store: LocalTransactionStore,
        tracker: PendingChangeTracker,
        state: SyncState,
        settings: Optional[SyncSettings] = None,
        user_id: Optional[str] = None,
        audit_logger: Optional[SyncAuditLogger] = None,
    ):
        self._remote = remote
        self._store = store
        self._tracker = tracker
        self._state = state
        self._settings = settings or SyncSettings()
        self.user_id = user_id
        self._audit_logger = audit_logger
        self._logger = structlog.get_logger(__name__)

    @property
    def is_syncing(self) -> bool:
        return self._state.is_syncing

    async def run(self) -> SyncReport:
        """Run one full sync and report how it went."""
        # Checked and set before the first await.
        if not self._state.begin_sync():
            self._logger.info("full_sync_skipped", reason="already_in_progress")
            if self._audit_logger:
                await self._audit_logger.log_sync_skipped(self.user_id or "")
            return SyncReport(outcome=SyncOutcome.SKIPPED, finished_at=utc_now())

        report = SyncReport(outcome=SyncOutcome.SUCCEEDED)
        correlation_id = create_correlation_id()
        error: Optional[str] = "Full sync interrupted"

        try:
            error = await self._run(report, correlation_id)
        finally:
            self._state.finish_sync(error=error)
            report.finished_at = utc_now()

        self._logger.info(
            "full_sync_finished",
            run_id=str(report.run_id),
            outcome=report.outcome.value,
            pushed=report.pushed,
            deleted=report.deleted,
            failed=len(report.failed_ids),
            merged=report.merged,
            conflicts=len(report.conflicts),
        )
        return report

    async def _run(self, report: SyncReport, correlation_id: UUID) -> Optional[str]:
        """Push then pull. Returns the error message, or None on success."""
        if not self.user_id:
            report.outcome = SyncOutcome.PUSH_FAILED
            report.error_message = "No authenticated user"
            return report.error_message

        self._logger.info(
            "full_sync_started",
            user_id=self.user_id,
            correlation_id=str(correlation_id),
            strategy=self._settings.push_strategy,
        )
        if self._audit_logger:
            await self._audit_logger.log_sync_started(
                self.user_id, correlation_id, len(self._store.all())
            )

        since = self._tracker.sequence
        confirmed = await self._push(report, correlation_id)
        if confirmed is None:
            report.outcome = SyncOutcome.PUSH_FAILED
            return report.error_message

        unpushed = await self._pull(report, correlation_id, since)
        if unpushed is None:
            report.outcome = SyncOutcome.PULL_FAILED
            return report.error_message

        self._tracker.clear_confirmed(confirmed, since)
        for transaction_id in unpushed:
            self._tracker.mark_pending(transaction_id)
        return None

    # -------------------------------------------------------------------------
    # Push
    # -------------------------------------------------------------------------

    async def _push(self, report: SyncReport, correlation_id: UUID) -> Optional[set[UUID]]:
        """Push local changes. Returns the confirmed ids, or None on failure."""
        local = self._store.all()
        pending = self._tracker.snapshot()
        local_ids = {t.id for t in local}

        if self._settings.push_strategy == "all":
            upserts = local
        else:
            upserts = [t for t in local if t.id in pending]
        deletes = [t_id for t_id in pending if t_id not in local_ids]

        timeout = self._settings.remote_call_timeout_seconds
        ids = [t.id for t in upserts] + deletes
        calls = [
            with_timeout(self._remote.upsert(t, self.user_id), timeout, f"Upload of {t.short_id()}")
            for t in upserts
        ] + [
            with_timeout(self._remote.delete(t_id, self.user_id), timeout, f"Delete of {t_id}")
            for t_id in deletes
        ]

        results = await asyncio.gather(*calls, return_exceptions=True)

        failures: list[tuple[UUID, BaseException]] = [
            (t_id, result)
            for t_id, result in zip(ids, results)
            if isinstance(result, BaseException)
        ]
        report.pushed = len(upserts) - sum(1 for t_id, _ in failures if t_id in local_ids)
        report.deleted = len(deletes) - sum(1 for t_id, _ in failures if t_id not in local_ids)

        if not failures:
            self._logger.info(
                "push_completed",
                user_id=self.user_id,
                pushed=report.pushed,
                deleted=report.deleted,
            )
            if self._audit_logger:
                await self._audit_logger.log_push_completed(
                    self.user_id, report.pushed, report.deleted, correlation_id
                )
            return set(ids)

        for t_id, _ in failures:
            self._tracker.mark_pending(t_id)
        report.failed_ids = [t_id for t_id, _ in failures]
        first_error = failures[0][1]
        report.error_message = (
            f"Failed to push changes: {len(failures)} of {len(ids)} writes failed "
            f"({first_error})"
        )

        self._logger.error(
            "push_failed",
            user_id=self.user_id,
            failed=len(failures),
            total=len(ids),
            error=str(first_error),
        )
        if self._audit_logger:
            await self._audit_logger.log_push_failed(
                self.user_id, report.failed_ids, report.error_message, correlation_id
            )
        return None

    # -------------------------------------------------------------------------
    # Pull
    # -------------------------------------------------------------------------

    async def _pull(
        self, report: SyncReport, correlation_id: UUID, since: int
    ) -> Optional[set[UUID]]:
        """
        Fetch and merge the remote collection.

        Ids marked pending after `since` changed locally while this run was
        in flight; their local state is kept.

        Returns:
            Ids whose local copy the remote does not have yet (local-only
            records and conflicts won locally), or None on failure
        """
        try:
            remote = await with_timeout(
                self._remote.fetch_all(self.user_id),
                self._settings.remote_call_timeout_seconds,
                "Remote fetch",
            )
        except RemoteServiceError as e:
            return await self._pull_failed(report, f"Failed to pull changes: {e}", correlation_id)

        remote_ids = {t.id for t in remote}
        try:
            async with self._store.transaction() as batch:
                held = self._tracker.marked_since(since)
                local = batch.all()
                merge = merge_transactions(
                    [settle_account(t, batch) for t in local],
                    [settle_account(t, batch) for t in remote if t.id not in held],
                    keep_local=held,
                )
                settled: list[Transaction] = merge.transactions
                batch.replace_all(settled)
        except StoreError as e:
            return await self._pull_failed(report, f"Failed to merge changes: {e}", correlation_id)

        report.merged = len(settled)
        report.conflicts = merge.conflicts

        for conflict in merge.conflicts:
            self._logger.info(
                "conflict_resolved",
                transaction_id=str(conflict.transaction_id),
                winner=conflict.winner.value,
                local_created_at=conflict.local_created_at.isoformat(),
                remote_created_at=conflict.remote_created_at.isoformat(),
            )
            if self._audit_logger:
                await self._audit_logger.log_conflict_resolved(
                    self.user_id, conflict.transaction_id, conflict.winner.value, correlation_id
                )

        self._logger.info(
            "pull_completed",
            user_id=self.user_id,
            local_before=len(local),
            local_after=len(settled),
            remote=len(remote),
            conflicts=len(merge.conflicts),
        )
        if self._audit_logger:
            await self._audit_logger.log_pull_completed(
                self.user_id, len(local), len(settled), len(merge.conflicts), correlation_id
            )

        unpushed = {t.id for t in local if t.id not in remote_ids and t.id not in held}
        unpushed.update(
            c.transaction_id for c in merge.conflicts if c.winner == ConflictSide.LOCAL
        )
        return unpushed

    async def _pull_failed(self, report: SyncReport, message: str, correlation_id: UUID) -> None:
        report.error_message = message
        self._logger.error("pull_failed", user_id=self.user_id, error=message)
        if self._audit_logger:
            await self._audit_logger.log_pull_failed(self.user_id, message, correlation_id)
        return None
