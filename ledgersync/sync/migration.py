"""
Orphaned transaction migration.

A transaction is orphaned when its account id is missing or points at an
account the user no longer has. Migration reassigns every orphan to the
default account in one local write batch.
"""

from typing import Iterable

from ledgersync.models.account import Account
from ledgersync.models.transaction import Transaction
from ledgersync.store import LocalTransactionStore


def find_orphaned_transactions(
    transactions: Iterable[Transaction],
    accounts: Iterable[Account],
) -> list[Transaction]:
    account_ids = {a.id for a in accounts}
    return [
        t for t in transactions
        if t.account_id is None or t.account_id not in account_ids
    ]


async def migrate_orphaned_transactions(store: LocalTransactionStore) -> list[Transaction]:
    """
    Reassign orphans to the default account.

    Returns:
        The migrated transactions, as stored after the migration

    Raises:
        MissingDefaultAccountError: If the user has no account at all
    """
    async with store.transaction() as batch:
        orphans = find_orphaned_transactions(batch.all(), batch.accounts())
        if not orphans:
            return []

        default_id = batch.require_default_account_id()
        migrated = [t.with_account(default_id) for t in orphans]
        for transaction in migrated:
            batch.replace(transaction)
        return migrated
