"""
Account (wallet) models.

Every settled transaction belongs to exactly one account. A user always
has a default account that absorbs transactions arriving without one.
"""

from datetime import datetime
from enum import Enum
from typing import Iterable, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from ledgersync.models.transaction import utc_now


class AccountType(str, Enum):
    """Kinds of wallets a user can keep."""
    PERSONAL = "personal"
    BUSINESS = "business"
    SAVINGS = "savings"
    INVESTMENT = "investment"
    SHARED = "shared"


class Account(BaseModel):
    """A wallet owned by a user."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType = AccountType.PERSONAL
    currency: str = Field(default="PHP", min_length=3, max_length=3)
    is_default: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)


def select_default_account(accounts: Iterable[Account]) -> Optional[Account]:
    """
    Pick the default account.

    The first account flagged as default wins; otherwise the first account
    at all; None when the user has no accounts.
    """
    accounts = list(accounts)
    for account in accounts:
        if account.is_default:
            return account
    return accounts[0] if accounts else None
