"""In-memory local transaction store."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional
from uuid import UUID

import structlog

from ledgersync.models.account import Account, select_default_account
from ledgersync.models.transaction import Transaction
from ledgersync.store.interface import LocalTransactionStore, StoreBatch, StoreObserver


class InMemoryTransactionStore(LocalTransactionStore):
    """
    Local store kept entirely in memory.

    An asyncio.Lock makes the store single-writer: batches from the change
    feed listener, the full-sync coordinator and direct user edits never
    interleave.
    """

    def __init__(
        self,
        accounts: Optional[Iterable[Account]] = None,
        transactions: Optional[Iterable[Transaction]] = None,
    ):
        self._accounts: list[Account] = list(accounts or [])
        self._transactions: dict[UUID, Transaction] = {t.id: t for t in transactions or []}
        self._lock = asyncio.Lock()
        self._observers: list[StoreObserver] = []
        self._logger = structlog.get_logger(__name__)
        self.revision = 0

    def all(self) -> list[Transaction]:
        return list(self._transactions.values())

    def get(self, transaction_id: UUID) -> Optional[Transaction]:
        return self._transactions.get(transaction_id)

    def accounts(self) -> list[Account]:
        return list(self._accounts)

    def default_account_id(self) -> Optional[UUID]:
        account = select_default_account(self._accounts)
        return account.id if account else None

    def __len__(self) -> int:
        return len(self._transactions)

    def add_observer(self, observer: StoreObserver) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: StoreObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreBatch]:
        async with self._lock:
            batch = StoreBatch(self._transactions, self._accounts)
            yield batch
            if batch.changed:
                await self._persist(batch.transactions_map, batch.accounts_list)
                self._transactions = batch.transactions_map
                self._accounts = batch.accounts_list
                self.revision += 1
                self._notify()

    async def _persist(
        self,
        transactions: dict[UUID, Transaction],
        accounts: list[Account],
    ) -> None:
        """Hook for durable subclasses; runs before the commit becomes visible."""
        return None

    def _notify(self) -> None:
        for observer in list(self._observers):
            try:
                observer()
            except Exception as e:
                self._logger.error("store_observer_failed", error=str(e))
