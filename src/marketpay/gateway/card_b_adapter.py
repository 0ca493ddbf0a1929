"""Card gateway B: Stripe-style checkout sessions.

Requests are form-encoded and amounts travel in minor units. The
``Stripe-Signature`` header has the shape ``t=<unix ts>,v1=<hex>`` where
the hex digest is an HMAC-SHA256 of ``"<ts>." + raw body`` keyed by the
webhook signing secret. Signatures older than the tolerance are refused.
"""

import hashlib
import json
import time
from collections.abc import Callable
from typing import Any

import structlog

from marketpay.config import gateway_setting
from marketpay.gateway.http_adapter import (
    HttpGateway,
    from_minor_units,
    hmac_hexdigest,
    signatures_match,
    to_minor_units,
)
from marketpay.gateway.port import (
    GatewayStatus,
    InitializationResult,
    RefundResult,
    VerificationResult,
    WebhookResult,
)

logger = structlog.get_logger(__name__)

DEFAULT_TOLERANCE_SECONDS = 300

_EVENT_STATUS = {
    "checkout.session.completed": GatewayStatus.COMPLETED,
    "checkout.session.expired": GatewayStatus.CANCELLED,
    "payment_intent.succeeded": GatewayStatus.COMPLETED,
    "payment_intent.payment_failed": GatewayStatus.FAILED,
    "payment_intent.canceled": GatewayStatus.CANCELLED,
}

_INTENT_STATUS = {
    "succeeded": GatewayStatus.COMPLETED,
    "canceled": GatewayStatus.CANCELLED,
    "requires_payment_method": GatewayStatus.FAILED,
}


def _parse_signature_header(header: str | None) -> tuple[str | None, list[str]]:
    timestamp = None
    signatures = []
    for part in (header or "").split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)
    return timestamp, signatures


def sign_payload(secret: str, payload: bytes, timestamp: int) -> str:
    """Build a signature header for ``payload``; used by tests and tooling."""
    digest = hmac_hexdigest(secret, f"{timestamp}.".encode() + payload, hashlib.sha256)
    return f"t={timestamp},v1={digest}"


class CardGatewayB(HttpGateway):
    name = "card-gateway-b"

    def __init__(
        self,
        secret_key: str | None = None,
        webhook_secret: str | None = None,
        base_url: str | None = None,
        success_url: str | None = None,
        cancel_url: str | None = None,
        tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
        clock: Callable[[], float] = time.time,
        **kwargs,
    ) -> None:
        self.secret_key = secret_key or gateway_setting("CARD_GATEWAY_B_SECRET_KEY")
        self.webhook_secret = webhook_secret or gateway_setting("CARD_GATEWAY_B_WEBHOOK_SECRET")
        self.success_url = success_url or gateway_setting("CARD_GATEWAY_B_SUCCESS_URL")
        self.cancel_url = cancel_url or gateway_setting("CARD_GATEWAY_B_CANCEL_URL")
        self.tolerance_seconds = tolerance_seconds
        self._clock = clock
        super().__init__(
            base_url=base_url or gateway_setting("CARD_GATEWAY_B_BASE_URL"),
            headers={"Authorization": f"Bearer {self.secret_key}"},
            **kwargs,
        )

    def initialize_payment(
        self,
        amount: float,
        currency: str,
        reference: str,
        payer_email: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> InitializationResult:
        form = {f"metadata[{key}]": str(value) for key, value in (metadata or {}).items()}
        # Reserved keys are written last so caller metadata cannot replace them
        form.update(
            {
                "mode": "payment",
                "success_url": self.success_url,
                "cancel_url": self.cancel_url,
                "client_reference_id": reference,
                "line_items[0][quantity]": "1",
                "line_items[0][price_data][currency]": currency.lower(),
                "line_items[0][price_data][unit_amount]": str(to_minor_units(amount)),
                "line_items[0][price_data][product_data][name]": f"Payment {reference}",
                "metadata[payment_reference]": reference,
                "payment_intent_data[metadata][payment_reference]": reference,
            }
        )
        if payer_email:
            form["customer_email"] = payer_email

        body, error = self._request("POST", "/v1/checkout/sessions", data=form)
        if error:
            return InitializationResult(success=False, raw_response=body, error=error)

        return InitializationResult(
            success=True,
            external_reference=body.get("id"),
            redirect_url=body.get("url"),
            raw_response=body,
        )

    def verify_payment(self, reference: str, external_reference: str | None = None) -> VerificationResult:
        if not external_reference:
            return VerificationResult(
                status=GatewayStatus.PENDING,
                error="A checkout session or payment intent id is required to verify",
            )

        if external_reference.startswith("pi_"):
            body, error = self._request("GET", f"/v1/payment_intents/{external_reference}")
            if error:
                return VerificationResult(status=GatewayStatus.PENDING, raw_response=body, error=error)
            return VerificationResult(
                status=_INTENT_STATUS.get(body.get("status"), GatewayStatus.PENDING),
                external_reference=body.get("id", external_reference),
                amount=from_minor_units(body.get("amount_received") or body.get("amount")),
                raw_response=body,
            )

        body, error = self._request("GET", f"/v1/checkout/sessions/{external_reference}")
        if error:
            return VerificationResult(status=GatewayStatus.PENDING, raw_response=body, error=error)

        if body.get("status") == "expired":
            status = GatewayStatus.CANCELLED
        elif body.get("status") == "complete" and body.get("payment_status") == "paid":
            status = GatewayStatus.COMPLETED
        else:
            status = GatewayStatus.PENDING

        return VerificationResult(
            status=status,
            external_reference=body.get("payment_intent") or external_reference,
            amount=from_minor_units(body.get("amount_total")),
            raw_response=body,
        )

    def refund_payment(self, reference: str, amount: float | None = None, reason: str | None = None) -> RefundResult:
        form = {"payment_intent": reference, "reason": "requested_by_customer"}
        if amount is not None:
            form["amount"] = str(to_minor_units(amount))
        if reason:
            form["metadata[reason]"] = reason

        body, error = self._request("POST", "/v1/refunds", data=form)
        if error:
            return RefundResult(success=False, raw_response=body, error=error)
        if body.get("status") not in ("succeeded", "pending"):
            return RefundResult(success=False, raw_response=body, error=f"Refund {body.get('status', 'failed')}")

        return RefundResult(success=True, refund_reference=body.get("id"), raw_response=body)

    def process_webhook(self, payload: bytes, signature: str) -> WebhookResult:
        timestamp, candidates = _parse_signature_header(signature)
        if not timestamp or not candidates:
            logger.warning("Rejected webhook with malformed signature header", gateway=self.name)
            return WebhookResult.rejected("Invalid webhook signature")

        try:
            signed_at = int(timestamp)
        except ValueError:
            return WebhookResult.rejected("Invalid webhook signature")
        if abs(self._clock() - signed_at) > self.tolerance_seconds:
            logger.warning("Rejected webhook outside signature tolerance", gateway=self.name)
            return WebhookResult.rejected("Webhook signature timestamp outside tolerance")

        expected = hmac_hexdigest(self.webhook_secret, f"{timestamp}.".encode() + payload, hashlib.sha256)
        if not any(signatures_match(expected, candidate) for candidate in candidates):
            logger.warning("Rejected webhook with invalid signature", gateway=self.name)
            return WebhookResult.rejected("Invalid webhook signature")

        try:
            body = json.loads(payload)
        except ValueError:
            return WebhookResult.rejected("Malformed webhook payload")
        if not isinstance(body, dict):
            return WebhookResult.rejected("Malformed webhook payload")

        event_type = body.get("type")
        obj = (body.get("data") or {}).get("object") or {}
        metadata = obj.get("metadata") or {}
        reference = metadata.get("payment_reference") or obj.get("client_reference_id")

        if event_type and event_type.startswith("checkout.session."):
            external_reference = obj.get("payment_intent") or obj.get("id")
            amount = obj.get("amount_total")
        else:
            external_reference = obj.get("id")
            amount = obj.get("amount_received") or obj.get("amount")

        return WebhookResult(
            success=True,
            reference=reference,
            status=_EVENT_STATUS.get(event_type, GatewayStatus.UNHANDLED),
            external_reference=external_reference,
            amount=from_minor_units(amount),
            event_type=event_type,
            raw_response=body,
        )
