"""
On-disk local transaction store.

The user's accounts and transactions are written to a single JSON file
after every committed batch, so the device keeps working (and keeps its
pending edits) across restarts without connectivity.

The file is replaced atomically: the new content is written to a sibling
temporary file which is then renamed over the old one.
"""

import os
from pathlib import Path
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, ValidationError

from ledgersync.models.account import Account
from ledgersync.models.transaction import Transaction
from ledgersync.store.interface import StoreError
from ledgersync.store.memory import InMemoryTransactionStore


class StoredProfile(BaseModel):
    """File layout of the on-disk store."""

    version: int = 1
    user_id: Optional[str] = None
    accounts: list[Account] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)


class JsonFileTransactionStore(InMemoryTransactionStore):
    """Local store persisted to a JSON file."""

    def __init__(self, path: Union[str, Path], user_id: Optional[str] = None):
        self._path = Path(path)
        self._user_id = user_id
        profile = self._load()
        super().__init__(accounts=profile.accounts, transactions=profile.transactions)

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> StoredProfile:
        if not self._path.exists():
            return StoredProfile(user_id=self._user_id)

        try:
            profile = StoredProfile.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise StoreError(f"Failed to load local store {self._path}: {e}")

        if self._user_id and profile.user_id and profile.user_id != self._user_id:
            raise StoreError(
                f"Local store {self._path} belongs to another user ({profile.user_id})"
            )
        return profile

    async def _persist(
        self,
        transactions: dict[UUID, Transaction],
        accounts: list[Account],
    ) -> None:
        profile = StoredProfile(
            user_id=self._user_id,
            accounts=accounts,
            transactions=list(transactions.values()),
        )
        temporary = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            temporary.write_text(profile.model_dump_json(indent=2), encoding="utf-8")
            os.replace(temporary, self._path)
        except OSError as e:
            raise StoreError(f"Failed to write local store {self._path}: {e}")
