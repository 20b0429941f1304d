"""Tests for the remote document codec."""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from ledgersync.models import ReceiptItem
from ledgersync.services.remote import (
    DocumentParseError,
    document_to_transaction,
    transaction_to_document,
)
from ledgersync.services.remote.codec import EPOCH

from conftest import USER_ID, T1, make_transaction, txn_id


class TestTransactionToDocument:
    """Tests for encoding transactions as documents."""

    def test_camel_case_fields(self):
        account_id = uuid4()
        document = transaction_to_document(
            make_transaction(account_id=account_id, merchant_name="Jollibee")
        )
        assert document["id"] == str(txn_id(1))
        assert document["userId"] == USER_ID
        assert document["accountId"] == str(account_id)
        assert document["merchantName"] == "Jollibee"
        assert document["createdAt"] == T1
        assert document["amount"] == -10.0

    def test_optional_fields_omitted(self):
        document = transaction_to_document(make_transaction())
        assert "accountId" not in document
        assert "note" not in document
        assert "exchangeRate" not in document

    def test_items_encoded(self):
        item = ReceiptItem(description="Rice", quantity=2, unit_price=Decimal("50"), total_price=Decimal("100"))
        document = transaction_to_document(make_transaction(items=[item]))
        assert document["items"] == [
            {"description": "Rice", "quantity": 2, "unitPrice": 50.0, "totalPrice": 100.0}
        ]


class TestDocumentToTransaction:
    """Tests for decoding remote documents."""

    def test_decodes_encoded_document(self):
        original = make_transaction(account_id=uuid4(), note="lunch", amount=Decimal("-50.25"))
        decoded = document_to_transaction(transaction_to_document(original), str(original.id))
        assert decoded == original

    def test_missing_required_fields(self):
        with pytest.raises(DocumentParseError) as exc_info:
            document_to_transaction({"category": "Food", "amount": 1.0}, "doc-1", USER_ID)
        assert exc_info.value.document_id == "doc-1"

    def test_boolean_amount_rejected(self):
        data = {"id": str(txn_id(1)), "category": "Food", "amount": True}
        with pytest.raises(DocumentParseError):
            document_to_transaction(data, "doc-1", USER_ID)

    def test_owner_falls_back_to_subscriber(self):
        data = {"id": str(txn_id(1)), "category": "Food", "amount": -3}
        txn = document_to_transaction(data, str(txn_id(1)), USER_ID)
        assert txn.user_id == USER_ID

    def test_no_owner_rejected(self):
        data = {"id": str(txn_id(1)), "category": "Food", "amount": -3}
        with pytest.raises(DocumentParseError):
            document_to_transaction(data, str(txn_id(1)))

    def test_missing_timestamps_decode_to_epoch(self):
        """A missing creation time must never look newer than a real one."""
        data = {"id": str(txn_id(1)), "category": "Food", "amount": -3}
        txn = document_to_transaction(data, str(txn_id(1)), USER_ID)
        assert txn.created_at == EPOCH
        assert txn.date == EPOCH

    def test_epoch_and_iso_timestamps(self):
        data = {
            "id": str(txn_id(1)),
            "category": "Food",
            "amount": -3,
            "date": T1.timestamp(),
            "createdAt": "2024-01-01T09:00:00+00:00",
        }
        txn = document_to_transaction(data, str(txn_id(1)), USER_ID)
        assert txn.date == T1
        assert txn.created_at == T1

    @pytest.mark.parametrize(
        "stored",
        [1_700_000_000_000, float("nan"), float("inf"), 10**20],
    )
    def test_out_of_range_epoch_numbers_decode_to_epoch(self, stored):
        """Millisecond or otherwise unrepresentable numbers do not abort decoding."""
        data = {"id": str(txn_id(1)), "category": "Food", "amount": -3, "createdAt": stored}
        txn = document_to_transaction(data, str(txn_id(1)), USER_ID)
        assert txn.created_at == EPOCH

    def test_malformed_items_dropped(self):
        data = {
            "id": str(txn_id(1)),
            "category": "Food",
            "amount": -3,
            "items": [
                {"description": "Rice", "quantity": 1, "unitPrice": 3, "totalPrice": 3},
                {"description": "Broken", "quantity": "one"},
                "junk",
            ],
        }
        txn = document_to_transaction(data, str(txn_id(1)), USER_ID)
        assert [item.description for item in txn.items] == ["Rice"]

    def test_invalid_account_id_is_ignored(self):
        data = {"id": str(txn_id(1)), "category": "Food", "amount": -3, "accountId": "not-a-uuid"}
        txn = document_to_transaction(data, str(txn_id(1)), USER_ID)
        assert txn.account_id is None

    def test_naive_datetime_read_as_utc(self):
        data = {
            "id": str(txn_id(1)),
            "category": "Food",
            "amount": -3,
            "createdAt": datetime(2024, 1, 1, 9, 0),
        }
        txn = document_to_transaction(data, str(txn_id(1)), USER_ID)
        assert txn.created_at == datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
