"""
Transaction Models

The transaction record is the unit of synchronization. The same record
lives in the local store and in the remote per-user collection, keyed
by a stable UUID.

Records are immutable: every mutation builds a new record that fully
replaces the prior one (never a partial write). The creation timestamp
is assigned once and is the sole tiebreaker during conflict resolution.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


def utc_now() -> datetime:
    """Current time as a tz-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ReceiptItem(BaseModel):
    """A single line item captured from a receipt."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    description: str = Field(..., min_length=1, max_length=200)
    quantity: int = Field(default=1, ge=0)
    unit_price: Decimal = Field(default=Decimal("0"))
    total_price: Decimal = Field(default=Decimal("0"))


class Transaction(BaseModel):
    """
    A single income or expense record.

    Amount is signed: positive values are income, negative values are
    expenses. The account id may be None only transiently (records that
    arrive from another device before a wallet was assigned); such records
    are backfilled with the user's default account before they settle.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    # Identity
    id: UUID = Field(
        default_factory=uuid4,
        description="Globally unique id, stable across local and remote copies"
    )
    user_id: str = Field(
        ...,
        min_length=1,
        description="Owning user (Firebase UID)"
    )
    account_id: Optional[UUID] = Field(
        default=None,
        description="Owning wallet/account"
    )

    # Core data
    amount: Decimal = Field(
        ...,
        description="Signed amount (positive = income, negative = expense)"
    )
    category: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Category label"
    )
    category_id: Optional[UUID] = None
    date: datetime = Field(
        default_factory=utc_now,
        description="When the transaction occurred"
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="When the record was created; never changes afterwards"
    )

    # Descriptive fields (not relevant to sync mechanics)
    merchant_name: Optional[str] = None
    payment_method: Optional[str] = None
    receipt_number: Optional[str] = None
    invoice_number: Optional[str] = None
    note: Optional[str] = Field(default=None, max_length=1000)
    items: tuple[ReceiptItem, ...] = Field(default_factory=tuple)
    has_receipt_image: bool = False

    # Currency
    primary_currency: str = Field(default="PHP", min_length=3, max_length=3)
    original_amount: Optional[Decimal] = None
    original_currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    exchange_rate: Optional[Decimal] = None

    @field_validator('date', 'created_at')
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_validator('primary_currency', 'original_currency')
    @classmethod
    def uppercase_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    @property
    def is_expense(self) -> bool:
        return self.amount < 0

    def with_account(self, account_id: UUID) -> "Transaction":
        """Return a copy assigned to another account."""
        return self.model_copy(update={"account_id": account_id})

    def short_id(self) -> str:
        """First eight characters of the id, for log output."""
        return str(self.id)[:8]
