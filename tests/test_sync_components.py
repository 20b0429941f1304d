"""Tests for the pending tracker, the conflict resolver and status derivation."""

import pytest
from datetime import timedelta
from decimal import Decimal

from ledgersync.models import ConflictSide, SyncStatusKind
from ledgersync.sync import (
    PendingChangeTracker,
    SyncState,
    derive_status,
    merge_transactions,
    resolve_conflict,
)

from conftest import T1, T2, make_transaction, txn_id


class TestPendingChangeTracker:
    """Tests for pending-set bookkeeping."""

    def test_mark_is_idempotent(self):
        tracker = PendingChangeTracker()
        tracker.mark_pending(txn_id(1))
        tracker.mark_pending(txn_id(1))
        assert tracker.count == 1
        assert txn_id(1) in tracker

    def test_clear_absent_is_noop(self):
        tracker = PendingChangeTracker()
        tracker.clear_pending(txn_id(1))
        assert len(tracker) == 0

    def test_observers_receive_count(self):
        tracker = PendingChangeTracker()
        counts = []
        tracker.add_observer(counts.append)

        tracker.mark_pending(txn_id(1))
        tracker.mark_pending(txn_id(2))
        tracker.clear_pending(txn_id(1))
        tracker.clear_all()

        assert counts == [1, 2, 1, 0]

    def test_snapshot_is_detached(self):
        tracker = PendingChangeTracker()
        tracker.mark_pending(txn_id(1))
        snapshot = tracker.snapshot()
        tracker.clear_all()
        assert snapshot == frozenset({txn_id(1)})

    def test_clear_confirmed_keeps_later_marks(self):
        """An id marked again after a run started is not cleared by that run."""
        tracker = PendingChangeTracker()
        tracker.mark_pending(txn_id(1))
        tracker.mark_pending(txn_id(2))
        since = tracker.sequence
        tracker.mark_pending(txn_id(2))

        tracker.clear_confirmed({txn_id(1), txn_id(2)}, since)

        assert tracker.snapshot() == frozenset({txn_id(2)})

    def test_marked_since_includes_confirmed_ids(self):
        tracker = PendingChangeTracker()
        tracker.mark_pending(txn_id(1))
        since = tracker.sequence
        tracker.mark_pending(txn_id(2))
        tracker.clear_pending(txn_id(2))

        assert tracker.marked_since(since) == {txn_id(2)}
        assert tracker.marked_since(0) == {txn_id(1), txn_id(2)}


class TestConflictResolution:
    """Tests for the later-creation-wins rule."""

    def test_later_local_wins(self):
        local = make_transaction(1, created_at=T2, amount=Decimal("-1"))
        remote = make_transaction(1, created_at=T1, amount=Decimal("-2"))
        winner, side = resolve_conflict(local, remote)
        assert winner is local
        assert side == ConflictSide.LOCAL

    def test_later_remote_wins(self):
        local = make_transaction(1, created_at=T1, amount=Decimal("-1"))
        remote = make_transaction(1, created_at=T2, amount=Decimal("-2"))
        assert resolve_conflict(local, remote) == (remote, ConflictSide.REMOTE)

    def test_tie_goes_to_remote(self):
        local = make_transaction(1, amount=Decimal("-1"))
        remote = make_transaction(1, amount=Decimal("-2"))
        winner, side = resolve_conflict(local, remote)
        assert winner is remote
        assert side == ConflictSide.REMOTE

    def test_resolution_is_deterministic(self):
        local = make_transaction(1, created_at=T2, amount=Decimal("-1"))
        remote = make_transaction(1, created_at=T1, amount=Decimal("-2"))
        results = {resolve_conflict(local, remote)[0].amount for _ in range(5)}
        assert results == {Decimal("-1")}


class TestMerge:
    """Tests for merging local and remote sets."""

    def test_kept_local_ids_skip_resolution(self):
        local = make_transaction(1, amount=Decimal("-99"))
        remote = [make_transaction(1, created_at=T2), make_transaction(2)]

        result = merge_transactions([local], remote, keep_local={txn_id(1), txn_id(2)})

        assert result.transactions == [local]
        assert result.conflicts == []

    def test_one_sided_records_kept(self):
        result = merge_transactions([make_transaction(1)], [make_transaction(2)])
        assert [t.id for t in result.transactions] == [txn_id(1), txn_id(2)]
        assert result.local_only == 1
        assert result.remote_only == 1
        assert result.conflicts == []

    def test_identical_records_are_not_conflicts(self):
        result = merge_transactions([make_transaction(1)], [make_transaction(1)])
        assert len(result.transactions) == 1
        assert result.conflicts == []

    def test_conflict_recorded(self):
        local = make_transaction(1, created_at=T1, amount=Decimal("-10"))
        remote = make_transaction(1, created_at=T2, amount=Decimal("-20"))
        result = merge_transactions([local], [remote])
        assert result.transactions == [remote]
        assert len(result.conflicts) == 1
        assert result.conflicts[0].winner == ConflictSide.REMOTE
        assert result.conflicts[0].remote_created_at - result.conflicts[0].local_created_at == timedelta(hours=1)

    def test_local_order_preserved(self):
        local = [make_transaction(3), make_transaction(1), make_transaction(2)]
        result = merge_transactions(local, [make_transaction(1, created_at=T2, amount=Decimal("-5"))])
        assert [t.id for t in result.transactions] == [txn_id(3), txn_id(1), txn_id(2)]


class TestStatusDerivation:
    """Tests for status precedence."""

    def test_syncing_beats_everything(self):
        status = derive_status(True, "boom", 3, T1)
        assert status.kind == SyncStatusKind.SYNCING

    def test_error_beats_pending(self):
        status = derive_status(False, "boom", 3, T1)
        assert status.kind == SyncStatusKind.ERROR
        assert status.message == "boom"

    def test_pending_beats_synced(self):
        status = derive_status(False, None, 2, T1)
        assert status.kind == SyncStatusKind.PENDING_CHANGES
        assert status.pending_count == 2

    def test_synced(self):
        status = derive_status(False, None, 0, T1)
        assert status.kind == SyncStatusKind.SYNCED
        assert status.last_sync_date == T1

    def test_not_synced(self):
        assert derive_status(False, None, 0, None).kind == SyncStatusKind.NOT_SYNCED


class TestSyncState:
    """Tests for the mutable sync flags."""

    def test_begin_sync_guards_reentry(self):
        state = SyncState()
        assert state.begin_sync()
        assert not state.begin_sync()
        state.finish_sync()
        assert state.begin_sync()

    def test_begin_sync_clears_error(self):
        state = SyncState()
        state.record_error("offline")
        state.begin_sync()
        assert state.sync_error is None

    def test_finish_with_error_keeps_last_sync_date(self):
        state = SyncState()
        state.begin_sync()
        state.finish_sync()
        first = state.last_sync_date
        state.begin_sync()
        state.finish_sync(error="offline")
        assert state.last_sync_date == first
        assert state.status(0).kind == SyncStatusKind.ERROR

    def test_observers_notified(self):
        state = SyncState()
        calls = []
        state.add_observer(lambda: calls.append(state.is_syncing))
        state.begin_sync()
        state.finish_sync()
        assert calls == [True, False]

    @pytest.mark.parametrize("message", ["offline", "timeout"])
    def test_clear_error(self, message):
        state = SyncState()
        state.record_error(message)
        state.clear_error()
        assert state.sync_error is None
