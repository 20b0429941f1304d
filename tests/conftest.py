"""
Shared fixtures.

Every test runs against the in-memory remote service and the in-memory
local store; nothing talks to Firestore or the network.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from ledgersync.audit import InMemoryAuditStorage, SyncAuditLogger
from ledgersync.config import SyncSettings
from ledgersync.models import Account, Transaction
from ledgersync.services.remote import InMemoryRemoteTransactionService
from ledgersync.store import InMemoryTransactionStore
from ledgersync.sync import SyncService


USER_ID = "user-123"

T1 = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
T2 = T1 + timedelta(hours=1)


def txn_id(n: int) -> UUID:
    """Readable fixed ids: txn_id(1) == 00000000-0000-0000-0000-000000000001."""
    return UUID(int=n)


def make_transaction(n: int = 1, **overrides) -> Transaction:
    fields = {
        "id": txn_id(n),
        "user_id": USER_ID,
        "amount": Decimal("-10.00"),
        "category": "Food",
        "date": T1,
        "created_at": T1,
    }
    fields.update(overrides)
    return Transaction(**fields)


async def drain(rounds: int = 10) -> None:
    """Let queued change-feed batches reach the listener."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def default_account() -> Account:
    return Account(user_id=USER_ID, name="Personal", is_default=True)


@pytest.fixture
def store(default_account) -> InMemoryTransactionStore:
    return InMemoryTransactionStore(accounts=[default_account])


@pytest.fixture
def remote() -> InMemoryRemoteTransactionService:
    return InMemoryRemoteTransactionService()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> SyncAuditLogger:
    return SyncAuditLogger(audit_storage)


@pytest.fixture
def sync_settings() -> SyncSettings:
    return SyncSettings(
        auto_sync_interval_seconds=3600,
        remote_call_timeout_seconds=1.0,
        push_strategy="pending",
    )


@pytest.fixture
def service(remote, store, sync_settings, audit_logger) -> SyncService:
    return SyncService(
        remote,
        store,
        user_id=USER_ID,
        settings=sync_settings,
        audit_logger=audit_logger,
    )
