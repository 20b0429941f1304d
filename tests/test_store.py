"""Tests for the local transaction stores."""

import json

import pytest
from decimal import Decimal

from ledgersync.models import Account
from ledgersync.store import (
    InMemoryTransactionStore,
    JsonFileTransactionStore,
    MissingDefaultAccountError,
    StoreError,
)

from conftest import USER_ID, make_transaction, txn_id


class TestWriteBatches:
    """Tests for batch commit semantics."""

    @pytest.mark.asyncio
    async def test_batch_commits_once(self, store):
        """Test that a multi-write batch notifies observers exactly once."""
        notifications = []
        store.add_observer(lambda: notifications.append(1))

        async with store.transaction() as batch:
            batch.insert(make_transaction(1))
            batch.insert(make_transaction(2))
            batch.remove(txn_id(1))

        assert [t.id for t in store.all()] == [txn_id(2)]
        assert notifications == [1]

    @pytest.mark.asyncio
    async def test_batch_discarded_on_error(self, store):
        """Test that an exception inside the batch leaves the store untouched."""
        await store.insert(make_transaction(1))

        with pytest.raises(StoreError):
            async with store.transaction() as batch:
                batch.insert(make_transaction(2))
                batch.insert(make_transaction(1))

        assert [t.id for t in store.all()] == [txn_id(1)]

    @pytest.mark.asyncio
    async def test_unchanged_batch_does_not_notify(self, store):
        txn = make_transaction(1)
        await store.insert(txn)
        notifications = []
        store.add_observer(lambda: notifications.append(1))

        async with store.transaction() as batch:
            batch.replace(txn)
            batch.remove(txn_id(9))

        assert notifications == []

    @pytest.mark.asyncio
    async def test_replace_missing_raises(self, store):
        with pytest.raises(StoreError):
            await store.replace(make_transaction(1))

    @pytest.mark.asyncio
    async def test_observer_failure_does_not_break_commit(self, store):
        def broken():
            raise RuntimeError("boom")

        store.add_observer(broken)
        await store.insert(make_transaction(1))
        assert store.get(txn_id(1)) is not None

    @pytest.mark.asyncio
    async def test_require_default_account(self):
        store = InMemoryTransactionStore()
        with pytest.raises(MissingDefaultAccountError):
            async with store.transaction() as batch:
                batch.require_default_account_id()

    @pytest.mark.asyncio
    async def test_adding_default_account_clears_previous_default(self, store, default_account):
        savings = Account(user_id=USER_ID, name="Savings", is_default=True)
        await store.add_account(savings)
        assert store.default_account_id() == savings.id
        assert sum(1 for a in store.accounts() if a.is_default) == 1


class TestJsonFileStore:
    """Tests for the on-disk store."""

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path, default_account):
        path = tmp_path / "store.json"
        store = JsonFileTransactionStore(path, user_id=USER_ID)
        await store.add_account(default_account)
        await store.insert(make_transaction(1, amount=Decimal("-12.34"), account_id=default_account.id))

        reopened = JsonFileTransactionStore(path, user_id=USER_ID)
        assert reopened.get(txn_id(1)) == store.get(txn_id(1))
        assert reopened.default_account_id() == default_account.id

    @pytest.mark.asyncio
    async def test_no_temporary_file_left_behind(self, tmp_path):
        path = tmp_path / "store.json"
        store = JsonFileTransactionStore(path, user_id=USER_ID)
        await store.insert(make_transaction(1))
        assert sorted(p.name for p in tmp_path.iterdir()) == ["store.json"]
        assert json.loads(path.read_text())["user_id"] == USER_ID

    def test_other_users_file_rejected(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text(json.dumps({"version": 1, "user_id": "someone-else"}))
        with pytest.raises(StoreError):
            JsonFileTransactionStore(path, user_id=USER_ID)

    def test_corrupt_file_rejected(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json")
        with pytest.raises(StoreError):
            JsonFileTransactionStore(path, user_id=USER_ID)

    def test_missing_file_starts_empty(self, tmp_path):
        store = JsonFileTransactionStore(tmp_path / "absent.json", user_id=USER_ID)
        assert store.all() == []
