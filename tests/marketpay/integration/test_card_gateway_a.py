import hashlib
import hmac
import json

import httpx
import pytest

from marketpay.gateway.card_a_adapter import CardGatewayA
from marketpay.gateway.port import GatewayStatus

SECRET = "sk_test_secret"


def _gateway(handler):
    return CardGatewayA(
        secret_key=SECRET,
        base_url="https://card-a.test",
        timeout=2,
        transport=httpx.MockTransport(handler),
    )


def _sign(payload: bytes) -> str:
    return hmac.new(SECRET.encode(), payload, hashlib.sha512).hexdigest()


class TestInitializePayment:
    def test_sends_minor_units_and_returns_redirect(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "status": True,
                    "data": {"access_code": "ac_123", "authorization_url": "https://checkout.test/ac_123"},
                },
            )

        result = _gateway(handler).initialize_payment(
            amount=1500.50, currency="NGN", reference="PAY-1", payer_email="a@example.com"
        )

        assert result.success
        assert result.external_reference == "ac_123"
        assert result.redirect_url == "https://checkout.test/ac_123"
        assert seen["auth"] == f"Bearer {SECRET}"
        assert seen["body"]["amount"] == 150050
        assert seen["body"]["metadata"]["payment_reference"] == "PAY-1"

    def test_requires_payer_email(self):
        result = _gateway(lambda request: httpx.Response(500)).initialize_payment(
            amount=10, currency="NGN", reference="PAY-1"
        )
        assert not result.success
        assert "email" in result.error

    def test_rejection_becomes_failure_result(self):
        result = _gateway(lambda request: httpx.Response(400, json={"message": "Invalid key"})).initialize_payment(
            amount=10, currency="NGN", reference="PAY-1", payer_email="a@example.com"
        )
        assert not result.success
        assert "Invalid key" in result.error

    def test_timeout_becomes_failure_result(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        result = _gateway(handler).initialize_payment(
            amount=10, currency="NGN", reference="PAY-1", payer_email="a@example.com"
        )
        assert not result.success
        assert "did not respond" in result.error


class TestVerifyPayment:
    @pytest.mark.parametrize(
        "remote_status, expected",
        [
            ("success", GatewayStatus.COMPLETED),
            ("failed", GatewayStatus.FAILED),
            ("abandoned", GatewayStatus.CANCELLED),
            ("ongoing", GatewayStatus.PENDING),
        ],
    )
    def test_status_mapping(self, remote_status, expected):
        def handler(request):
            assert request.url.path == "/transaction/verify/PAY-1"
            return httpx.Response(200, json={"status": True, "data": {"id": 99, "status": remote_status, "amount": 500000}})

        result = _gateway(handler).verify_payment("PAY-1")

        assert result.status == expected
        assert result.external_reference == "99"
        assert result.amount == 5000.0

    def test_unreachable_gateway_is_pending_with_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        result = _gateway(handler).verify_payment("PAY-1")
        assert result.status == GatewayStatus.PENDING
        assert "unreachable" in result.error


class TestWebhook:
    def _payload(self, event="charge.success"):
        return json.dumps(
            {
                "event": event,
                "data": {"id": 7, "reference": "PAY-9", "amount": 250000, "metadata": {"payment_reference": "PAY-9"}},
            }
        ).encode()

    def test_valid_signature_is_parsed(self):
        payload = self._payload()

        result = _gateway(lambda request: httpx.Response(200)).process_webhook(payload, _sign(payload))

        assert result.success
        assert result.reference == "PAY-9"
        assert result.status == GatewayStatus.COMPLETED
        assert result.amount == 2500.0
        assert result.external_reference == "7"

    def test_bad_signature_is_rejected(self):
        payload = self._payload()
        result = _gateway(lambda request: httpx.Response(200)).process_webhook(payload, "0" * 128)
        assert not result.success
        assert result.error == "Invalid webhook signature"

    def test_unknown_event_is_unhandled(self):
        payload = self._payload(event="subscription.create")
        result = _gateway(lambda request: httpx.Response(200)).process_webhook(payload, _sign(payload))
        assert result.status == GatewayStatus.UNHANDLED


def test_refund_posts_transaction_and_amount():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"status": True, "data": {"id": 321}})

    result = _gateway(handler).refund_payment("PAY-1", amount=100, reason="damaged")

    assert result.success
    assert result.refund_reference == "321"
    assert seen["body"] == {"transaction": "PAY-1", "amount": 10000, "merchant_note": "damaged"}
