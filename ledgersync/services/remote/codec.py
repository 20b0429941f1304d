"""
Transaction <-> remote document conversion.

Documents use camelCase field names. Timestamps are stored as native
datetimes (Firestore Timestamp values); numbers are read as epoch seconds
and strings as ISO-8601 for documents written by older clients.

A missing or unreadable `date` or `createdAt` (including epoch numbers out
of range, such as milliseconds) decodes to the Unix epoch, never to the
current time: a fabricated "now" would silently win every conflict.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from ledgersync.models.transaction import ReceiptItem, Transaction, ensure_utc
from ledgersync.services.remote.interface import DocumentParseError


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

logger = structlog.get_logger(__name__)


def transaction_to_document(transaction: Transaction) -> dict[str, Any]:
    """Convert a transaction to its remote document representation."""
    data: dict[str, Any] = {
        "id": str(transaction.id),
        "userId": transaction.user_id,
        "category": transaction.category,
        "amount": float(transaction.amount),
        "date": transaction.date,
        "createdAt": transaction.created_at,
        "hasReceiptImage": transaction.has_receipt_image,
        "primaryCurrency": transaction.primary_currency,
        "items": [
            {
                "description": item.description,
                "quantity": item.quantity,
                "unitPrice": float(item.unit_price),
                "totalPrice": float(item.total_price),
            }
            for item in transaction.items
        ],
    }

    # Optional fields are omitted rather than written as null
    optional = {
        "accountId": str(transaction.account_id) if transaction.account_id else None,
        "categoryId": str(transaction.category_id) if transaction.category_id else None,
        "merchantName": transaction.merchant_name,
        "paymentMethod": transaction.payment_method,
        "receiptNumber": transaction.receipt_number,
        "invoiceNumber": transaction.invoice_number,
        "note": transaction.note,
        "originalAmount": (
            float(transaction.original_amount)
            if transaction.original_amount is not None else None
        ),
        "originalCurrency": transaction.original_currency,
        "exchangeRate": (
            float(transaction.exchange_rate)
            if transaction.exchange_rate is not None else None
        ),
    }
    data.update({key: value for key, value in optional.items() if value is not None})
    return data


def _safe_uuid(value: Any) -> Optional[UUID]:
    if not isinstance(value, str):
        return None
    try:
        return UUID(value)
    except ValueError:
        return None


def _safe_decimal(value: Any) -> Optional[Decimal]:
    """Convert a stored number to Decimal; booleans and strings are rejected."""
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, Decimal)):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _timestamp(value: Any, field: str, document_id: str) -> datetime:
    """Read a stored timestamp, falling back to the epoch when absent or unreadable."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            pass
    if isinstance(value, str):
        try:
            return ensure_utc(datetime.fromisoformat(value))
        except ValueError:
            pass

    logger.warning(
        "document_timestamp_missing",
        document_id=document_id[:8],
        field=field,
        stored_type=type(value).__name__,
    )
    return EPOCH


def _parse_items(raw_items: Any) -> list[ReceiptItem]:
    """Parse line items, dropping malformed ones individually."""
    if not isinstance(raw_items, list):
        return []

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            continue
        quantity = raw.get("quantity")
        unit_price = _safe_decimal(raw.get("unitPrice"))
        total_price = _safe_decimal(raw.get("totalPrice"))
        if (
            not isinstance(raw.get("description"), str)
            or not isinstance(quantity, int)
            or isinstance(quantity, bool)
            or unit_price is None
            or total_price is None
        ):
            continue
        try:
            items.append(ReceiptItem(
                description=raw["description"],
                quantity=quantity,
                unit_price=unit_price,
                total_price=total_price,
            ))
        except ValidationError:
            continue
    return items


def document_to_transaction(
    data: dict[str, Any],
    document_id: str,
    user_id: Optional[str] = None,
) -> Transaction:
    """
    Convert a remote document into a transaction.

    Args:
        data: The document's fields
        document_id: The document id (used in error reports)
        user_id: Owner to assume when the document does not carry one

    Raises:
        DocumentParseError: If a required field is missing or invalid
    """
    if not isinstance(data, dict):
        raise DocumentParseError(document_id, "Document has no fields")

    transaction_id = _safe_uuid(data.get("id"))
    category = data.get("category")
    amount = _safe_decimal(data.get("amount"))

    if transaction_id is None or not isinstance(category, str) or amount is None:
        raise DocumentParseError(
            document_id,
            f"Missing required transaction fields in document {document_id}",
        )

    owner = data.get("userId") if isinstance(data.get("userId"), str) else user_id
    if not owner:
        raise DocumentParseError(document_id, f"Document {document_id} has no owner")

    try:
        return Transaction(
            id=transaction_id,
            user_id=owner,
            account_id=_safe_uuid(data.get("accountId")),
            amount=amount,
            category=category,
            category_id=_safe_uuid(data.get("categoryId")),
            date=_timestamp(data.get("date"), "date", document_id),
            created_at=_timestamp(data.get("createdAt"), "createdAt", document_id),
            merchant_name=data.get("merchantName"),
            payment_method=data.get("paymentMethod"),
            receipt_number=data.get("receiptNumber"),
            invoice_number=data.get("invoiceNumber"),
            note=data.get("note"),
            items=_parse_items(data.get("items")),
            has_receipt_image=bool(data.get("hasReceiptImage", False)),
            primary_currency=data.get("primaryCurrency") or "PHP",
            original_amount=_safe_decimal(data.get("originalAmount")),
            original_currency=data.get("originalCurrency"),
            exchange_rate=_safe_decimal(data.get("exchangeRate")),
        )
    except ValidationError as e:
        raise DocumentParseError(document_id, f"Invalid transaction document {document_id}: {e}")
