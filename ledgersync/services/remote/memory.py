"""
In-memory remote transaction service.

Behaves like the Firestore backend from the sync engine's point of view:
documents are kept in wire format, reads go through the same codec, and
writes are broadcast to open change feeds. Used for tests and for running
the engine without a cloud project.
"""

import asyncio
from typing import Any, Optional
from uuid import UUID

import structlog

from ledgersync.models.sync import ChangeEvent
from ledgersync.models.transaction import Transaction
from ledgersync.services.remote.codec import document_to_transaction, transaction_to_document
from ledgersync.services.remote.interface import (
    ChangeFeed,
    DocumentParseError,
    ListenerError,
    RemoteTransactionService,
    RemoteUnavailableError,
)


class InMemoryRemoteTransactionService(RemoteTransactionService):
    """
    Dictionary-backed remote service.

    Attributes:
        available: When False every call raises RemoteUnavailableError,
                   simulating a device without connectivity.
        latency: Seconds each call waits before completing.
        calls: Log of (operation, argument) tuples, in call order.
    """

    def __init__(self, latency: float = 0.0):
        self._documents: dict[str, dict[str, dict[str, Any]]] = {}
        self._feeds: dict[str, list[ChangeFeed]] = {}
        self.available = True
        self.latency = latency
        self.calls: list[tuple[str, Any]] = []
        self._logger = structlog.get_logger(__name__)

    async def _enter(self, operation: str, argument: Any) -> None:
        self.calls.append((operation, argument))
        if self.latency:
            await asyncio.sleep(self.latency)
        if not self.available:
            raise RemoteUnavailableError(f"Remote service unavailable during {operation}")

    def _collection(self, user_id: str) -> dict[str, dict[str, Any]]:
        return self._documents.setdefault(user_id, {})

    def _broadcast(self, user_id: str, events: list[ChangeEvent]) -> None:
        feeds = self._feeds.get(user_id, [])
        self._feeds[user_id] = [feed for feed in feeds if not feed.closed]
        for feed in self._feeds[user_id]:
            feed.publish(events)

    # -------------------------------------------------------------------------
    # Seeding helpers (simulate writes made by another device)
    # -------------------------------------------------------------------------

    def put_document(self, user_id: str, document_id: str, data: dict[str, Any]) -> None:
        """Store a raw document and broadcast it, bypassing availability checks."""
        collection = self._collection(user_id)
        event = (
            ChangeEvent.modified(document_id, data)
            if document_id in collection
            else ChangeEvent.added(document_id, data)
        )
        collection[document_id] = dict(data)
        self._broadcast(user_id, [event])

    def put_transaction(self, transaction: Transaction) -> None:
        self.put_document(
            transaction.user_id,
            str(transaction.id),
            transaction_to_document(transaction),
        )

    def remove_document(self, user_id: str, document_id: str) -> None:
        if self._collection(user_id).pop(document_id, None) is not None:
            self._broadcast(user_id, [ChangeEvent.removed(document_id)])

    def documents(self, user_id: str) -> dict[str, dict[str, Any]]:
        return dict(self._collection(user_id))

    def calls_for(self, operation: str) -> list[Any]:
        return [argument for name, argument in self.calls if name == operation]

    # -------------------------------------------------------------------------
    # RemoteTransactionService
    # -------------------------------------------------------------------------

    async def upsert(self, transaction: Transaction, user_id: str) -> None:
        await self._enter("upsert", transaction.id)
        self.put_document(user_id, str(transaction.id), transaction_to_document(transaction))

    async def delete(self, transaction_id: UUID, user_id: str) -> None:
        await self._enter("delete", transaction_id)
        self.remove_document(user_id, str(transaction_id))

    async def fetch_all(self, user_id: str) -> list[Transaction]:
        await self._enter("fetch_all", user_id)

        transactions = []
        for document_id, data in self._collection(user_id).items():
            try:
                transactions.append(document_to_transaction(data, document_id, user_id))
            except DocumentParseError as e:
                self._logger.warning("remote_document_skipped", document_id=document_id, error=str(e))
        transactions.sort(key=lambda t: t.date, reverse=True)
        return transactions

    async def subscribe(self, user_id: str) -> ChangeFeed:
        self.calls.append(("subscribe", user_id))
        if not self.available:
            raise ListenerError("Remote service unavailable; change feed not established")

        feed = ChangeFeed()
        self._feeds.setdefault(user_id, []).append(feed)

        existing = sorted(
            self._collection(user_id).items(),
            key=lambda item: str(item[1].get("date", "")),
            reverse=True,
        )
        feed.publish([ChangeEvent.added(doc_id, data) for doc_id, data in existing])
        return feed

    async def clear_all(self, user_id: str) -> int:
        await self._enter("clear_all", user_id)
        document_ids = list(self._collection(user_id))
        for document_id in document_ids:
            self.remove_document(user_id, document_id)
        return len(document_ids)

    def subscriber_count(self, user_id: Optional[str] = None) -> int:
        feeds = (
            self._feeds.get(user_id, [])
            if user_id is not None
            else [f for fs in self._feeds.values() for f in fs]
        )
        return sum(1 for feed in feeds if not feed.closed)
