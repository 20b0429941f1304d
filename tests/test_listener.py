"""Tests for the change feed listener."""

import pytest
from decimal import Decimal

from ledgersync.models import ChangeEvent, SyncEventType, SyncStatusKind
from ledgersync.services.remote import transaction_to_document
from ledgersync.services.remote.codec import EPOCH
from ledgersync.store import InMemoryTransactionStore
from ledgersync.sync import ChangeFeedListener, SyncState

from conftest import USER_ID, T2, drain, make_transaction, txn_id


def added(txn):
    return ChangeEvent.added(str(txn.id), transaction_to_document(txn))


def modified(txn):
    return ChangeEvent.modified(str(txn.id), transaction_to_document(txn))


@pytest.fixture
def state():
    return SyncState()


@pytest.fixture
def listener(remote, store, state, audit_logger):
    return ChangeFeedListener(remote, store, state, user_id=USER_ID, audit_logger=audit_logger)


class TestApplyBatch:
    """Tests for applying change feed batches."""

    @pytest.mark.asyncio
    async def test_added_inserts_with_default_account(self, listener, store, default_account):
        """Records arriving without an account get the default account."""
        await listener.apply_batch([added(make_transaction(1))])

        stored = store.get(txn_id(1))
        assert stored is not None
        assert stored.account_id == default_account.id

    @pytest.mark.asyncio
    async def test_applying_twice_is_idempotent(self, listener, store):
        batch = [added(make_transaction(1)), added(make_transaction(2))]
        await listener.apply_batch(batch)
        first = sorted(store.all(), key=lambda t: t.id)

        await listener.apply_batch(batch)
        assert sorted(store.all(), key=lambda t: t.id) == first

    @pytest.mark.asyncio
    async def test_added_does_not_overwrite_existing(self, listener, store):
        local = make_transaction(1, amount=Decimal("-1"))
        await store.insert(local)
        await listener.apply_batch([added(make_transaction(1, amount=Decimal("-99")))])
        assert store.get(txn_id(1)).amount == Decimal("-1")

    @pytest.mark.asyncio
    async def test_modified_replaces_or_inserts(self, listener, store, default_account):
        await store.insert(make_transaction(1, account_id=default_account.id))
        await listener.apply_batch([
            modified(make_transaction(1, amount=Decimal("-42"), account_id=default_account.id)),
            modified(make_transaction(2)),
        ])
        assert store.get(txn_id(1)).amount == Decimal("-42")
        assert store.get(txn_id(2)) is not None

    @pytest.mark.asyncio
    async def test_removed_deletes_local_record(self, listener, store):
        await store.insert(make_transaction(3))
        await listener.apply_batch([ChangeEvent.removed(str(txn_id(3)))])
        assert store.get(txn_id(3)) is None

    @pytest.mark.asyncio
    async def test_removed_unknown_id_is_noop(self, listener, store):
        await listener.apply_batch([
            ChangeEvent.removed(str(txn_id(7))),
            ChangeEvent.removed("not-a-uuid"),
        ])
        assert store.all() == []

    @pytest.mark.asyncio
    async def test_batch_notifies_once(self, listener, store):
        notifications = []
        store.add_observer(lambda: notifications.append(1))
        await listener.apply_batch([added(make_transaction(n)) for n in range(1, 6)])
        assert len(store.all()) == 5
        assert notifications == [1]

    @pytest.mark.asyncio
    async def test_batch_updates_last_sync_date(self, listener, state):
        assert state.last_sync_date is None
        await listener.apply_batch([added(make_transaction(1))])
        assert state.last_sync_date is not None

    @pytest.mark.asyncio
    async def test_unchanged_batch_keeps_last_sync_date(self, listener, store, state, default_account):
        existing = make_transaction(1, account_id=default_account.id)
        await store.insert(existing)

        assert await listener.apply_batch([added(existing), modified(existing)])
        assert state.last_sync_date is None

    @pytest.mark.asyncio
    async def test_millisecond_timestamp_does_not_stop_batch(self, listener, store):
        broken = transaction_to_document(make_transaction(1))
        broken["createdAt"] = 1_700_000_000_000

        assert await listener.apply_batch([
            ChangeEvent.added(str(txn_id(1)), broken),
            added(make_transaction(2)),
        ])
        assert store.get(txn_id(1)).created_at == EPOCH
        assert store.get(txn_id(2)) is not None

    @pytest.mark.asyncio
    async def test_malformed_document_skipped(self, listener, store, audit_storage):
        """One bad document does not block the rest of the batch."""
        batch = [
            ChangeEvent.added("broken", {"category": "Food"}),
            added(make_transaction(2)),
        ]
        assert await listener.apply_batch(batch)
        assert [t.id for t in store.all()] == [txn_id(2)]

        events = await audit_storage.get_recent_events()
        assert any(e.event_type == SyncEventType.DOCUMENT_SKIPPED for e in events)

    @pytest.mark.asyncio
    async def test_missing_default_account_rejects_batch(self, remote, state):
        store = InMemoryTransactionStore()
        listener = ChangeFeedListener(remote, store, state, user_id=USER_ID)

        applied = await listener.apply_batch([
            added(make_transaction(1)),
            ChangeEvent.removed(str(txn_id(2))),
        ])

        assert not applied
        assert store.all() == []
        assert state.status(0).kind == SyncStatusKind.ERROR


class TestSubscription:
    """Tests for the subscription lifecycle."""

    @pytest.mark.asyncio
    async def test_initial_snapshot_applied(self, listener, remote, store):
        remote.put_transaction(make_transaction(1))
        remote.put_transaction(make_transaction(2))

        assert await listener.subscribe()
        await drain()

        assert {t.id for t in store.all()} == {txn_id(1), txn_id(2)}
        listener.unsubscribe()

    @pytest.mark.asyncio
    async def test_remote_delete_reaches_local_store(self, listener, remote, store):
        remote.put_transaction(make_transaction(3))
        await listener.subscribe()
        await drain()
        assert store.get(txn_id(3)) is not None

        remote.remove_document(USER_ID, str(txn_id(3)))
        await drain()
        assert store.get(txn_id(3)) is None
        listener.unsubscribe()

    @pytest.mark.asyncio
    async def test_subscribe_twice_opens_one_feed(self, listener, remote):
        await listener.subscribe()
        await listener.subscribe()
        assert remote.subscriber_count(USER_ID) == 1
        listener.unsubscribe()

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_new_events(self, listener, remote, store):
        await listener.subscribe()
        await drain()
        listener.unsubscribe()
        assert not listener.is_listening

        remote.put_transaction(make_transaction(5, created_at=T2))
        await drain()
        assert store.get(txn_id(5)) is None

    @pytest.mark.asyncio
    async def test_subscribe_failure_sets_error(self, listener, remote, state, audit_storage):
        remote.available = False

        assert not await listener.subscribe()
        assert not listener.is_listening
        assert state.sync_error.startswith("Real-time sync error")

        events = await audit_storage.get_recent_events()
        assert events[0].event_type == SyncEventType.LISTENER_FAILED

    @pytest.mark.asyncio
    async def test_subscribe_without_user(self, remote, store, state):
        listener = ChangeFeedListener(remote, store, state)
        assert not await listener.subscribe()
        assert remote.calls_for("subscribe") == []
        assert state.sync_error is not None

    @pytest.mark.asyncio
    async def test_feed_failure_deactivates_listener(self, listener, state):
        await listener.subscribe()
        listener._feed.fail(RuntimeError("stream reset"))
        await drain()
        assert not listener.is_listening
        assert "stream reset" in state.sync_error

    @pytest.mark.asyncio
    async def test_unexpected_error_deactivates_listener(
        self, listener, remote, store, state, monkeypatch
    ):
        """A crashed consumer is reported and can be reopened."""
        await listener.subscribe()
        await drain()

        async def explode(events):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(listener, "apply_batch", explode)
        remote.put_transaction(make_transaction(1))
        await drain()

        assert listener.task.done()
        assert not listener.is_listening
        assert "disk on fire" in state.sync_error
        assert remote.subscriber_count(USER_ID) == 0

        monkeypatch.undo()
        assert await listener.subscribe()
        remote.put_transaction(make_transaction(2))
        await drain()
        assert store.get(txn_id(2)) is not None
        listener.unsubscribe()
