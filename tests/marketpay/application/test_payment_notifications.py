"""Payers and vendors hear about payments once the change has committed."""

import pytest
from protean import current_domain

from marketpay.actors import Actor
from marketpay.collaborators.ports import NotificationKind
from marketpay.payment.processing import ProcessPayment
from marketpay.payment.refund import RefundPayment
from marketpay.payment.verification import VerifyPayment
from marketpay.wallet.wallet import InsufficientFunds


def _pay(order, method="wallet"):
    return current_domain.process(
        ProcessPayment(order_id=order.id, payment_method=method),
        asynchronous=False,
    )


def test_wallet_payment_notifies_customer_and_vendor(fund, place_order, notifier):
    fund("cust-001", 5000)
    order = place_order(total_amount=2000)

    _pay(order)

    customer = notifier.sent_to(Actor.user("cust-001"), NotificationKind.PAYMENT_COMPLETED)
    vendor = notifier.sent_to(Actor.user("vendor-001"), NotificationKind.PAYMENT_COMPLETED)
    assert customer[0]["payload"]["order_id"] == order.id
    assert vendor[0]["payload"]["vendor_amount"] == 1600.0
    assert vendor[0]["payload"]["commission_amount"] == 400.0


def test_failed_card_payment_notifies_payer(place_order, card_gateway, notifier):
    order = place_order()
    summary = _pay(order, method="CARD_GATEWAY_A")

    card_gateway.configure(should_succeed=True, verify_status="failed")
    current_domain.process(VerifyPayment(payment_reference=summary["payment_reference"]), asynchronous=False)

    failed = notifier.sent_to(Actor.user("cust-001"), NotificationKind.PAYMENT_FAILED)
    assert [m["payload"]["payment_reference"] for m in failed] == [summary["payment_reference"]]
    assert notifier.sent_to(Actor.user("vendor-001")) == []


def test_refund_notifies_payer(fund, place_order, notifier):
    fund("cust-001", 5000)
    summary = _pay(place_order(total_amount=1000))

    current_domain.process(RefundPayment(payment_id=summary["payment_id"], amount=400), asynchronous=False)

    refunded = notifier.sent_to(Actor.user("cust-001"), NotificationKind.PAYMENT_REFUNDED)
    assert refunded[0]["payload"]["amount"] == 400.0
    assert refunded[0]["payload"]["fully_refunded"] is False


def test_nothing_sent_when_payment_is_refused(fund, place_order, notifier):
    fund("cust-001", 100)
    order = place_order(total_amount=2000)

    with pytest.raises(InsufficientFunds):
        _pay(order)

    assert notifier.sent_to(Actor.user("cust-001"), NotificationKind.PAYMENT_COMPLETED) == []
