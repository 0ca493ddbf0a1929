"""Bank gateway: Mercury-style payments API.

Amounts travel in major units. Webhooks carry an HMAC-SHA256 hex digest of
the raw body in ``x-mercury-signature``.
"""

import hashlib
import json
from typing import Any

import structlog

from marketpay.config import gateway_setting
from marketpay.gateway.http_adapter import HttpGateway, hmac_hexdigest, signatures_match
from marketpay.gateway.port import (
    GatewayStatus,
    InitializationResult,
    RefundResult,
    VerificationResult,
    WebhookResult,
)

logger = structlog.get_logger(__name__)

_EVENT_STATUS = {
    "payment.completed": GatewayStatus.COMPLETED,
    "payment.failed": GatewayStatus.FAILED,
    "payment.cancelled": GatewayStatus.CANCELLED,
}

_PAYMENT_STATUS = {
    "pending": GatewayStatus.PENDING,
    "completed": GatewayStatus.COMPLETED,
    "failed": GatewayStatus.FAILED,
    "cancelled": GatewayStatus.CANCELLED,
}


def _amount(value: Any) -> float | None:
    return round(float(value), 2) if value is not None else None


class BankGateway(HttpGateway):
    name = "bank-gateway"

    def __init__(
        self,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        base_url: str | None = None,
        **kwargs,
    ) -> None:
        self.api_key = api_key or gateway_setting("BANK_GATEWAY_API_KEY")
        self.webhook_secret = webhook_secret or gateway_setting("BANK_GATEWAY_WEBHOOK_SECRET")
        super().__init__(
            base_url=base_url or gateway_setting("BANK_GATEWAY_BASE_URL"),
            headers={"Authorization": f"Bearer {self.api_key}"},
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
        payload = {
            "amount": round(float(amount), 2),
            "currency": currency,
            "reference": reference,
            "metadata": {**(metadata or {}), "payment_reference": reference},
        }
        if payer_email:
            payload["payer_email"] = payer_email

        body, error = self._request("POST", "/payments", json=payload)
        if error:
            return InitializationResult(success=False, raw_response=body, error=error)

        return InitializationResult(
            success=True,
            external_reference=body.get("id"),
            redirect_url=body.get("payment_url"),
            raw_response=body,
        )

    def verify_payment(self, reference: str, external_reference: str | None = None) -> VerificationResult:
        path = f"/payments/{external_reference}" if external_reference else f"/payments/by-reference/{reference}"
        body, error = self._request("GET", path)
        if error:
            return VerificationResult(status=GatewayStatus.PENDING, raw_response=body, error=error)

        return VerificationResult(
            status=_PAYMENT_STATUS.get(str(body.get("status", "")).lower(), GatewayStatus.PENDING),
            external_reference=body.get("id", external_reference),
            amount=_amount(body.get("amount")),
            raw_response=body,
        )

    def refund_payment(self, reference: str, amount: float | None = None, reason: str | None = None) -> RefundResult:
        payload: dict[str, Any] = {"reason": reason or "Refund requested"}
        if amount is not None:
            payload["amount"] = round(float(amount), 2)

        body, error = self._request("POST", f"/payments/{reference}/refunds", json=payload)
        if error:
            return RefundResult(success=False, raw_response=body, error=error)
        return RefundResult(success=True, refund_reference=body.get("id"), raw_response=body)

    def process_webhook(self, payload: bytes, signature: str) -> WebhookResult:
        expected = hmac_hexdigest(self.webhook_secret, payload, hashlib.sha256)
        if not signatures_match(expected, signature):
            logger.warning("Rejected webhook with invalid signature", gateway=self.name)
            return WebhookResult.rejected("Invalid webhook signature")

        try:
            body = json.loads(payload)
        except ValueError:
            return WebhookResult.rejected("Malformed webhook payload")
        if not isinstance(body, dict):
            return WebhookResult.rejected("Malformed webhook payload")

        event_type = body.get("event")
        data = body.get("data") or {}
        metadata = data.get("metadata") or {}
        return WebhookResult(
            success=True,
            reference=metadata.get("payment_reference") or data.get("reference"),
            status=_EVENT_STATUS.get(event_type, GatewayStatus.UNHANDLED),
            external_reference=data.get("id"),
            amount=_amount(data.get("amount")),
            event_type=event_type,
            raw_response=body,
        )
