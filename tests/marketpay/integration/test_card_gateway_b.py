import json
from urllib.parse import parse_qs

import httpx

from marketpay.gateway.card_b_adapter import CardGatewayB, sign_payload
from marketpay.gateway.port import GatewayStatus

WEBHOOK_SECRET = "whsec_test"
NOW = 1_700_000_000


def _gateway(handler=None):
    return CardGatewayB(
        secret_key="sk_test_b",
        webhook_secret=WEBHOOK_SECRET,
        base_url="https://card-b.test",
        success_url="https://shop.test/ok",
        cancel_url="https://shop.test/cancel",
        clock=lambda: NOW,
        timeout=2,
        transport=httpx.MockTransport(handler or (lambda request: httpx.Response(200, json={}))),
    )


def _event(event_type="checkout.session.completed"):
    return json.dumps(
        {
            "type": event_type,
            "data": {
                "object": {
                    "id": "cs_1",
                    "payment_intent": "pi_1",
                    "amount_total": 420000,
                    "metadata": {"payment_reference": "PAY-B"},
                }
            },
        }
    ).encode()


def test_checkout_session_is_form_encoded():
    seen = {}

    def handler(request):
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"id": "cs_1", "url": "https://checkout.test/cs_1"})

    result = _gateway(handler).initialize_payment(amount=42, currency="USD", reference="PAY-B", payer_email="b@example.com")

    assert result.success
    assert result.external_reference == "cs_1"
    assert seen["form"]["line_items[0][price_data][unit_amount]"] == ["4200"]
    assert seen["form"]["line_items[0][price_data][currency]"] == ["usd"]
    assert seen["form"]["client_reference_id"] == ["PAY-B"]


def test_caller_metadata_cannot_replace_payment_reference():
    seen = {}

    def handler(request):
        seen["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json={"id": "cs_1", "url": "https://checkout.test/cs_1"})

    _gateway(handler).initialize_payment(
        amount=10, currency="USD", reference="PAY-real", metadata={"payment_reference": "PAY-forged", "order_id": "ord-9"}
    )

    assert seen["form"]["metadata[payment_reference]"] == ["PAY-real"]
    assert seen["form"]["metadata[order_id]"] == ["ord-9"]


def test_verify_paid_session():
    def handler(request):
        assert request.url.path == "/v1/checkout/sessions/cs_1"
        return httpx.Response(
            200, json={"id": "cs_1", "status": "complete", "payment_status": "paid", "payment_intent": "pi_1", "amount_total": 4200}
        )

    result = _gateway(handler).verify_payment("PAY-B", "cs_1")

    assert result.status == GatewayStatus.COMPLETED
    assert result.external_reference == "pi_1"
    assert result.amount == 42.0


def test_verify_without_external_reference_is_an_error():
    result = _gateway().verify_payment("PAY-B")
    assert result.status == GatewayStatus.PENDING
    assert result.error


def test_signed_webhook_is_accepted():
    payload = _event()

    result = _gateway().process_webhook(payload, sign_payload(WEBHOOK_SECRET, payload, NOW))

    assert result.success
    assert result.reference == "PAY-B"
    assert result.status == GatewayStatus.COMPLETED
    assert result.external_reference == "pi_1"
    assert result.amount == 4200.0


def test_stale_signature_is_rejected():
    payload = _event()
    header = sign_payload(WEBHOOK_SECRET, payload, NOW - 3600)

    result = _gateway().process_webhook(payload, header)

    assert not result.success
    assert "tolerance" in result.error


def test_signature_with_wrong_secret_is_rejected():
    payload = _event()
    result = _gateway().process_webhook(payload, sign_payload("whsec_other", payload, NOW))
    assert not result.success


def test_malformed_header_is_rejected():
    result = _gateway().process_webhook(_event(), "garbage")
    assert result.error == "Invalid webhook signature"


def test_expired_session_cancels():
    payload = _event("checkout.session.expired")
    result = _gateway().process_webhook(payload, sign_payload(WEBHOOK_SECRET, payload, NOW))
    assert result.status == GatewayStatus.CANCELLED


def test_refund_status_checked():
    result = _gateway(lambda request: httpx.Response(200, json={"id": "re_1", "status": "failed"})).refund_payment(
        "pi_1", amount=10
    )
    assert not result.success
    assert result.error == "Refund failed"
