"""
Remote Transaction Services Package

Provides the abstract remote interface, the wire codec, and the
Firestore and in-memory implementations.

The Firestore implementation is imported lazily (see get_firestore_service)
so hosts and tests that never talk to Firestore do not load its client.
"""

from ledgersync.services.remote.codec import document_to_transaction, transaction_to_document
from ledgersync.services.remote.interface import (
    ChangeFeed,
    DocumentParseError,
    ListenerError,
    RemoteServiceError,
    RemoteTimeoutError,
    RemoteTransactionService,
    RemoteUnavailableError,
    with_timeout,
)
from ledgersync.services.remote.memory import InMemoryRemoteTransactionService


def get_firestore_service(settings=None) -> RemoteTransactionService:
    """Build the Firestore-backed remote service."""
    from ledgersync.services.remote.firestore import FirestoreTransactionService

    return FirestoreTransactionService(settings=settings)


__all__ = [
    # Interface
    "ChangeFeed",
    "RemoteTransactionService",
    # Exceptions
    "DocumentParseError",
    "ListenerError",
    "RemoteServiceError",
    "RemoteTimeoutError",
    "RemoteUnavailableError",
    "with_timeout",
    # Codec
    "document_to_transaction",
    "transaction_to_document",
    # Implementations
    "InMemoryRemoteTransactionService",
    "get_firestore_service",
]
