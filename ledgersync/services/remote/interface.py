"""
Abstract Remote Transaction Service

The sync engine talks to the cloud through this interface only:
1. Firestore in production
2. An in-memory service for tests and offline development

Every call is asynchronous. Failures are raised as RemoteServiceError
subclasses; the sync engine turns them into pending changes and status.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional, Sequence, TypeVar, Union
from uuid import UUID

from ledgersync.models.sync import ChangeEvent
from ledgersync.models.transaction import Transaction


T = TypeVar("T")


class RemoteServiceError(Exception):
    """Base exception for remote service operations."""
    pass


class RemoteUnavailableError(RemoteServiceError):
    """Remote service unreachable or temporarily failing (network, 5xx, quota)."""
    pass


class RemoteTimeoutError(RemoteServiceError):
    """A remote call did not complete within its time bound."""
    pass


class ListenerError(RemoteServiceError):
    """The change feed subscription could not be established or broke."""
    pass


class DocumentParseError(RemoteServiceError):
    """A remote document could not be converted into a transaction."""

    def __init__(self, document_id: str, message: str):
        self.document_id = document_id
        super().__init__(message)


class ChangeFeed:
    """
    Live subscription to a user's transaction change feed.

    Batches of events are consumed with `async for batch in feed`.
    Producers running on other threads (the Firestore watch) hand batches
    over with publish_threadsafe(); producers already on the event loop
    call publish().

    unsubscribe() stops delivery of new batches. Batches queued before the
    call are still delivered.
    """

    _CLOSED = object()

    def __init__(self, on_unsubscribe: Optional[Callable[[], None]] = None):
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._on_unsubscribe = on_unsubscribe
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def set_on_unsubscribe(self, callback: Callable[[], None]) -> None:
        self._on_unsubscribe = callback

    def publish(self, batch: Sequence[ChangeEvent]) -> None:
        """Queue a batch of events (event-loop thread only)."""
        if self._closed or not batch:
            return
        self._queue.put_nowait(list(batch))

    def publish_threadsafe(self, batch: Sequence[ChangeEvent]) -> None:
        """Queue a batch of events from any thread."""
        self._loop.call_soon_threadsafe(self.publish, batch)

    def fail(self, error: Exception) -> None:
        """Terminate the feed with an error raised to the consumer."""
        if self._closed:
            return
        self._queue.put_nowait(error)

    def fail_threadsafe(self, error: Exception) -> None:
        self._loop.call_soon_threadsafe(self.fail, error)

    def unsubscribe(self) -> None:
        """Stop delivering new events."""
        if self._closed:
            return
        self._closed = True
        if self._on_unsubscribe:
            self._on_unsubscribe()
        self._queue.put_nowait(self._CLOSED)

    def __aiter__(self) -> "ChangeFeed":
        return self

    async def __anext__(self) -> list[ChangeEvent]:
        item: Union[list[ChangeEvent], Exception, object] = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise ListenerError(f"Change feed terminated: {item}") from item
        return item


class RemoteTransactionService(ABC):
    """
    Abstract interface for the per-user remote transaction collection.

    Any backend (Firestore, in-memory, ...) must implement these methods.
    """

    @abstractmethod
    async def upsert(self, transaction: Transaction, user_id: str) -> None:
        """
        Create or fully replace a transaction document.

        Raises:
            RemoteServiceError: If the write is not confirmed
        """
        pass

    @abstractmethod
    async def delete(self, transaction_id: UUID, user_id: str) -> None:
        """
        Delete a transaction document. Deleting a missing document succeeds.

        Raises:
            RemoteServiceError: If the delete is not confirmed
        """
        pass

    @abstractmethod
    async def fetch_all(self, user_id: str) -> list[Transaction]:
        """
        Fetch every transaction of a user.

        Malformed documents are skipped, not raised.

        Raises:
            RemoteServiceError: If the collection cannot be read
        """
        pass

    @abstractmethod
    async def subscribe(self, user_id: str) -> ChangeFeed:
        """
        Open the change feed for a user, ordered by date descending.

        The first batch delivers every existing document as ADDED.

        Raises:
            ListenerError: If the subscription cannot be established
        """
        pass

    @abstractmethod
    async def clear_all(self, user_id: str) -> int:
        """
        Delete every transaction of a user (account deletion flows).

        Returns:
            Number of documents deleted
        """
        pass


async def with_timeout(call: Awaitable[T], timeout: float, action: str) -> T:
    """
    Await a remote call, bounded by `timeout` seconds.

    Raises:
        RemoteTimeoutError: If the call did not complete in time
    """
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError:
        raise RemoteTimeoutError(f"{action} timed out after {timeout:g}s")
