"""
Local Store Package

Abstract local transaction store plus in-memory and JSON-file
implementations.
"""

from ledgersync.store.interface import (
    LocalTransactionStore,
    MissingDefaultAccountError,
    StoreBatch,
    StoreError,
    StoreObserver,
)
from ledgersync.store.json_file import JsonFileTransactionStore, StoredProfile
from ledgersync.store.memory import InMemoryTransactionStore

__all__ = [
    # Interface
    "LocalTransactionStore",
    "StoreBatch",
    "StoreObserver",
    # Exceptions
    "MissingDefaultAccountError",
    "StoreError",
    # Implementations
    "InMemoryTransactionStore",
    "JsonFileTransactionStore",
    "StoredProfile",
]
