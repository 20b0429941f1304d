"""Services package."""

from ledgersync.services.remote import (
    ChangeFeed,
    DocumentParseError,
    InMemoryRemoteTransactionService,
    ListenerError,
    RemoteServiceError,
    RemoteTimeoutError,
    RemoteTransactionService,
    RemoteUnavailableError,
    get_firestore_service,
)

__all__ = [
    "ChangeFeed",
    "DocumentParseError",
    "InMemoryRemoteTransactionService",
    "ListenerError",
    "RemoteServiceError",
    "RemoteTimeoutError",
    "RemoteTransactionService",
    "RemoteUnavailableError",
    "get_firestore_service",
]
