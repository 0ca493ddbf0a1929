"""Application tests for competing writers on one wallet or one payment."""

import json

import pytest
from protean import current_domain
from protean.exceptions import ExpectedVersionError

from marketpay.gateway.fake_adapter import TEST_SIGNATURE
from marketpay.gateway.methods import PaymentProvider
from marketpay.payment.lookup import get_payment_by_reference
from marketpay.payment.payment import PaymentStatus
from marketpay.payment.processing import ProcessPayment
from marketpay.payment.reconciliation import WebhookReconciler
from marketpay.payment.verification import VerifyPayment
from marketpay.wallet.history import get_balance, transaction_history
from marketpay.wallet.transaction import TransactionType
from marketpay.wallet.wallet import Wallet


def _card_payment(place_order):
    order = place_order(total_amount=1000.0)
    summary = current_domain.process(
        ProcessPayment(order_id=order.id, payment_method="CARD_GATEWAY_A"),
        asynchronous=False,
    )
    return summary["payment_reference"]


def _verify(reference):
    current_domain.process(VerifyPayment(payment_reference=reference), asynchronous=False)


def _webhook(reference):
    payload = json.dumps({"reference": reference, "status": "completed", "event": "charge.success"}).encode()
    WebhookReconciler().reconcile(PaymentProvider.CARD_A, payload, TEST_SIGNATURE)


class TestStaleWallet:
    def test_second_writer_with_old_version_is_rejected(self, fund):
        wallet_id = fund("vendor-001", 500).wallet_id
        repo = current_domain.repository_for(Wallet)

        first = repo.get(wallet_id)
        second = repo.get(wallet_id)

        first.post(TransactionType.CREDIT, 100)
        repo.add(first)

        second.post(TransactionType.DEBIT, 500)
        with pytest.raises(ExpectedVersionError):
            repo.add(second)

        assert repo.get(wallet_id).balance == 600.0


class TestVerifyAndWebhookOnOnePayment:
    @pytest.mark.parametrize(
        "settle_order", [(_verify, _webhook), (_webhook, _verify)], ids=["verify-first", "webhook-first"]
    )
    def test_vendor_is_credited_once(self, place_order, settle_order):
        reference = _card_payment(place_order)

        for settle in settle_order:
            settle(reference)

        credits = transaction_history("vendor-001", transaction_type=TransactionType.CREDIT)["transactions"]
        assert [t.amount for t in credits] == [800.0]
        assert get_balance("vendor-001")["balance"] == 800.0
        assert get_payment_by_reference(reference).status == PaymentStatus.COMPLETED.value
