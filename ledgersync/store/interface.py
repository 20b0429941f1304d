"""
Abstract Local Transaction Store

The local store is the single source of truth for the current user's
transactions and accounts on this device.

Writes are serialized: every mutation runs inside a write batch obtained
from `transaction()`. A batch works on a copy of the collection; leaving the
block normally commits the copy in one assignment and notifies observers
once, leaving it with an exception discards the copy.

    async with store.transaction() as batch:
        batch.insert(txn)
        batch.remove(other_id)
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Callable, Iterable, Optional
from uuid import UUID

from ledgersync.models.account import Account, select_default_account
from ledgersync.models.transaction import Transaction


StoreObserver = Callable[[], None]


class StoreError(Exception):
    """Base exception for local store operations."""
    pass


class MissingDefaultAccountError(StoreError):
    """A transaction needs the default account but the user has none."""
    pass


class StoreBatch:
    """
    Working copy of the store used inside one write batch.

    Methods mirror the store's write API; nothing is visible to readers of
    the store until the batch commits.
    """

    def __init__(self, transactions: dict[UUID, Transaction], accounts: list[Account]):
        self._transactions = dict(transactions)
        self._accounts = list(accounts)
        self.changed = False

    # Reads

    def all(self) -> list[Transaction]:
        return list(self._transactions.values())

    def get(self, transaction_id: UUID) -> Optional[Transaction]:
        return self._transactions.get(transaction_id)

    def __contains__(self, transaction_id: UUID) -> bool:
        return transaction_id in self._transactions

    def accounts(self) -> list[Account]:
        return list(self._accounts)

    def default_account_id(self) -> Optional[UUID]:
        account = select_default_account(self._accounts)
        return account.id if account else None

    def require_default_account_id(self) -> UUID:
        account_id = self.default_account_id()
        if account_id is None:
            raise MissingDefaultAccountError("No default account exists for this user")
        return account_id

    # Writes

    def insert(self, transaction: Transaction) -> None:
        if transaction.id in self._transactions:
            raise StoreError(f"Transaction already exists: {transaction.id}")
        self._transactions[transaction.id] = transaction
        self.changed = True

    def replace(self, transaction: Transaction) -> None:
        """Replace an existing record in place, keeping its position."""
        if transaction.id not in self._transactions:
            raise StoreError(f"Transaction not found: {transaction.id}")
        if self._transactions[transaction.id] != transaction:
            self._transactions[transaction.id] = transaction
            self.changed = True

    def upsert(self, transaction: Transaction) -> None:
        if transaction.id in self._transactions:
            self.replace(transaction)
        else:
            self.insert(transaction)

    def remove(self, transaction_id: UUID) -> bool:
        """Remove a record. Returns False if it was not present."""
        if self._transactions.pop(transaction_id, None) is None:
            return False
        self.changed = True
        return True

    def replace_all(self, transactions: Iterable[Transaction]) -> None:
        replacement = {t.id: t for t in transactions}
        if replacement != self._transactions or list(replacement) != list(self._transactions):
            self._transactions = replacement
            self.changed = True

    def clear(self) -> None:
        if self._transactions:
            self._transactions = {}
            self.changed = True

    def add_account(self, account: Account) -> None:
        if account.is_default:
            self._accounts = [
                a.model_copy(update={"is_default": False}) for a in self._accounts
            ]
        self._accounts = [a for a in self._accounts if a.id != account.id] + [account]
        self.changed = True

    def set_default_account(self, account_id: UUID) -> None:
        if not any(a.id == account_id for a in self._accounts):
            raise StoreError(f"Account not found: {account_id}")
        self._accounts = [
            a.model_copy(update={"is_default": a.id == account_id}) for a in self._accounts
        ]
        self.changed = True

    # Committed state (read by the owning store)

    @property
    def transactions_map(self) -> dict[UUID, Transaction]:
        return self._transactions

    @property
    def accounts_list(self) -> list[Account]:
        return self._accounts


class LocalTransactionStore(ABC):
    """
    Abstract interface for the local transaction store.

    Reads return snapshots and never block. Writes go through
    `transaction()`; the single-record helpers are shorthands for a
    one-operation batch.
    """

    @abstractmethod
    def all(self) -> list[Transaction]:
        """Snapshot of every transaction."""
        pass

    @abstractmethod
    def get(self, transaction_id: UUID) -> Optional[Transaction]:
        """A single transaction, or None."""
        pass

    @abstractmethod
    def accounts(self) -> list[Account]:
        """Snapshot of the user's accounts."""
        pass

    @abstractmethod
    def default_account_id(self) -> Optional[UUID]:
        """Account used to backfill transactions that lack one."""
        pass

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[StoreBatch]:
        """
        Open a serialized write batch.

        Commit happens on normal exit; observers are notified once if the
        batch changed anything. An exception discards the batch.
        """
        pass

    @abstractmethod
    def add_observer(self, observer: StoreObserver) -> None:
        """Register a callable invoked after each committed change."""
        pass

    @abstractmethod
    def remove_observer(self, observer: StoreObserver) -> None:
        pass

    async def insert(self, transaction: Transaction) -> None:
        async with self.transaction() as batch:
            batch.insert(transaction)

    async def replace(self, transaction: Transaction) -> None:
        async with self.transaction() as batch:
            batch.replace(transaction)

    async def upsert(self, transaction: Transaction) -> None:
        async with self.transaction() as batch:
            batch.upsert(transaction)

    async def remove(self, transaction_id: UUID) -> bool:
        async with self.transaction() as batch:
            return batch.remove(transaction_id)

    async def replace_all(self, transactions: Iterable[Transaction]) -> None:
        async with self.transaction() as batch:
            batch.replace_all(transactions)

    async def clear(self) -> None:
        async with self.transaction() as batch:
            batch.clear()

    async def add_account(self, account: Account) -> None:
        async with self.transaction() as batch:
            batch.add_account(account)
