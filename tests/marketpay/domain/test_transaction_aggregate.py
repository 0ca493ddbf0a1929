"""Tests for ledger rows: balance agreement, metadata and reversal."""

import pytest
from protean.exceptions import ValidationError

from marketpay.wallet.transaction import Transaction, TransactionStatus, TransactionType, is_credit
from marketpay.wallet.wallet import Wallet


@pytest.fixture()
def wallet():
    return Wallet.open(user_id="user-001", currency="NGN")


def _credit(wallet, amount=2000.0, before=0.0, after=None, **kwargs):
    return Transaction.record(
        wallet=wallet,
        transaction_type=TransactionType.CREDIT,
        amount=amount,
        balance_before=before,
        balance_after=before + amount if after is None else after,
        reference_id=kwargs.pop("reference_id", "PAY-001"),
        **kwargs,
    )


class TestTransactionRecord:
    def test_records_completed_row(self, wallet):
        txn = _credit(wallet)
        assert txn.status == TransactionStatus.COMPLETED.value
        assert txn.user_id == "user-001"
        assert txn.wallet_id == str(wallet.id)

    def test_balances_must_agree_with_credit(self, wallet):
        with pytest.raises(ValidationError) as exc:
            _credit(wallet, amount=100, before=0, after=90)
        assert "balance_after" in exc.value.messages

    def test_balances_must_agree_with_debit(self, wallet):
        txn = Transaction.record(
            wallet=wallet,
            transaction_type=TransactionType.PAYOUT,
            amount=300,
            balance_before=1000,
            balance_after=700,
        )
        assert txn.balance_after == 700

    def test_amount_must_be_positive(self, wallet):
        with pytest.raises(ValidationError):
            _credit(wallet, amount=0, before=0, after=0)

    def test_metadata_round_trips_as_dict(self, wallet):
        txn = _credit(wallet, metadata={"payment_id": "p-1"})
        assert txn.metadata_dict == {"payment_id": "p-1"}

    def test_response_exposes_metadata_not_raw_json(self, wallet):
        data = _credit(wallet, metadata={"order_id": "ord-1"}).to_response()
        assert data["metadata"] == {"order_id": "ord-1"}
        assert "metadata_json" not in data


class TestTransactionReversal:
    def test_mark_reversed(self, wallet):
        txn = _credit(wallet, metadata={"payment_id": "p-1"})
        txn.mark_reversed("Duplicate credit detected and corrected", {"correction_transaction_id": "c-1"})

        assert txn.status == TransactionStatus.REVERSED.value
        assert txn.reversed_at is not None
        assert txn.reversal_reason == "Duplicate credit detected and corrected"
        assert txn.metadata_dict == {
            "payment_id": "p-1",
            "correction_transaction_id": "c-1",
            "correction_applied": True,
        }

    def test_cannot_reverse_twice(self, wallet):
        txn = _credit(wallet)
        txn.mark_reversed("first")
        with pytest.raises(ValidationError):
            txn.mark_reversed("second")


class TestCreditSide:
    @pytest.mark.parametrize("transaction_type", [TransactionType.CREDIT, TransactionType.REFUND])
    def test_credit_types(self, transaction_type):
        assert is_credit(transaction_type)

    @pytest.mark.parametrize(
        "transaction_type",
        [TransactionType.DEBIT, TransactionType.PAYOUT, TransactionType.FEE, TransactionType.REVERSAL, TransactionType.COMMISSION],
    )
    def test_debit_types(self, transaction_type):
        assert not is_credit(transaction_type)
