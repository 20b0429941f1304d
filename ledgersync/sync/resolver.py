"""
Conflict resolution between local and remote copies.

Rule: the copy with the later creation timestamp wins; on a tie the
remote copy wins. Records present on only one side are kept as they are.
Ids listed in `keep_local` were changed locally after the remote copy was
read: their local state is kept, including a local deletion.

Both functions are pure; logging of outcomes is left to the caller.
"""

from typing import AbstractSet, Iterable
from uuid import UUID

from ledgersync.models.sync import ConflictSide, MergeResult, ResolvedConflict
from ledgersync.models.transaction import Transaction


def resolve_conflict(local: Transaction, remote: Transaction) -> tuple[Transaction, ConflictSide]:
    """Pick the winning copy of a transaction present on both sides."""
    if local.created_at > remote.created_at:
        return local, ConflictSide.LOCAL
    return remote, ConflictSide.REMOTE


def merge_transactions(
    local: Iterable[Transaction],
    remote: Iterable[Transaction],
    keep_local: AbstractSet[UUID] = frozenset(),
) -> MergeResult:
    """
    Merge two transaction sets by id.

    Output order: local records in their existing order (replaced in place
    by the winner), followed by remote-only records in remote order.
    """
    remote_by_id = {t.id: t for t in remote}
    merged: list[Transaction] = []
    conflicts: list[ResolvedConflict] = []
    local_only = 0
    seen = set()

    for local_txn in local:
        seen.add(local_txn.id)
        remote_txn = remote_by_id.get(local_txn.id)

        if local_txn.id in keep_local:
            merged.append(local_txn)
            continue

        if remote_txn is None:
            local_only += 1
            merged.append(local_txn)
            continue

        if remote_txn == local_txn:
            merged.append(local_txn)
            continue

        winner, side = resolve_conflict(local_txn, remote_txn)
        conflicts.append(ResolvedConflict(
            transaction_id=local_txn.id,
            winner=side,
            local_created_at=local_txn.created_at,
            remote_created_at=remote_txn.created_at,
        ))
        merged.append(winner)

    remote_only = [
        t for t_id, t in remote_by_id.items()
        if t_id not in seen and t_id not in keep_local
    ]
    merged.extend(remote_only)

    return MergeResult(
        transactions=merged,
        conflicts=conflicts,
        local_only=local_only,
        remote_only=len(remote_only),
    )
