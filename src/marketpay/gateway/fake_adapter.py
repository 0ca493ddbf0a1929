"""Configurable fake payment gateway for development and testing.

Simulates an external rail without network calls. It can be told to
succeed or fail, and what status verification should report, which makes
it useful for:
- Manual API testing via /payments/gateway/configure
- Automated tests with predictable outcomes
- Development without real gateway credentials

Webhooks are accepted when signed with ``test-signature``; the body is a
flat JSON object: ``{"reference", "status", "external_reference", "amount"}``.
"""

import json
from typing import Any
from uuid import uuid4

from marketpay.gateway.port import (
    GatewayStatus,
    InitializationResult,
    PaymentGateway,
    RefundResult,
    VerificationResult,
    WebhookResult,
)

TEST_SIGNATURE = "test-signature"


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    name = "fake-gateway"

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.verify_status: GatewayStatus = GatewayStatus.COMPLETED
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool,
        failure_reason: str = "Card declined",
        verify_status: GatewayStatus | str = GatewayStatus.COMPLETED,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.verify_status = GatewayStatus(verify_status)

    def initialize_payment(
        self,
        amount: float,
        currency: str,
        reference: str,
        payer_email: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> InitializationResult:
        self.calls.append(
            {
                "method": "initialize_payment",
                "amount": amount,
                "currency": currency,
                "reference": reference,
                "payer_email": payer_email,
                "metadata": {**(metadata or {}), "payment_reference": reference},
            }
        )

        if not self.should_succeed:
            return InitializationResult(success=False, error=self.failure_reason)

        external_reference = f"fake_txn_{uuid4().hex[:12]}"
        return InitializationResult(
            success=True,
            external_reference=external_reference,
            redirect_url=f"https://gateway.test/pay/{external_reference}",
            raw_response={"id": external_reference, "status": "pending"},
        )

    def verify_payment(self, reference: str, external_reference: str | None = None) -> VerificationResult:
        self.calls.append(
            {"method": "verify_payment", "reference": reference, "external_reference": external_reference}
        )

        if not self.should_succeed:
            return VerificationResult(status=GatewayStatus.PENDING, error=self.failure_reason)
        return VerificationResult(
            status=self.verify_status,
            external_reference=external_reference or f"fake_txn_{uuid4().hex[:12]}",
            raw_response={"reference": reference, "status": self.verify_status.value},
        )

    def refund_payment(self, reference: str, amount: float | None = None, reason: str | None = None) -> RefundResult:
        self.calls.append({"method": "refund_payment", "reference": reference, "amount": amount, "reason": reason})

        if not self.should_succeed:
            return RefundResult(success=False, error=self.failure_reason)
        return RefundResult(success=True, refund_reference=f"fake_ref_{uuid4().hex[:12]}")

    def process_webhook(self, payload: bytes, signature: str) -> WebhookResult:
        self.calls.append({"method": "process_webhook", "signature": signature})

        if signature != TEST_SIGNATURE:
            return WebhookResult.rejected("Invalid webhook signature")
        try:
            body = json.loads(payload)
        except ValueError:
            return WebhookResult.rejected("Malformed webhook payload")

        try:
            status = GatewayStatus(body.get("status"))
        except ValueError:
            status = GatewayStatus.UNHANDLED
        return WebhookResult(
            success=True,
            reference=body.get("reference"),
            status=status,
            external_reference=body.get("external_reference"),
            amount=body.get("amount"),
            event_type=body.get("event", "fake.event"),
            raw_response=body,
        )
