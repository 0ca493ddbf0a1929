"""Card gateway A: Paystack-style transaction API.

Amounts travel in minor units. Webhooks are signed with an HMAC-SHA512 of
the raw body keyed by the secret key (``x-paystack-signature``).
"""

import hashlib
import json
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

_EVENT_STATUS = {
    "charge.success": GatewayStatus.COMPLETED,
    "charge.failed": GatewayStatus.FAILED,
    "transfer.success": GatewayStatus.COMPLETED,
    "transfer.failed": GatewayStatus.FAILED,
}

_TRANSACTION_STATUS = {
    "success": GatewayStatus.COMPLETED,
    "failed": GatewayStatus.FAILED,
    "reversed": GatewayStatus.FAILED,
    "abandoned": GatewayStatus.CANCELLED,
}


class CardGatewayA(HttpGateway):
    name = "card-gateway-a"

    def __init__(self, secret_key: str | None = None, base_url: str | None = None, **kwargs) -> None:
        self.secret_key = secret_key or gateway_setting("CARD_GATEWAY_A_SECRET_KEY")
        super().__init__(
            base_url=base_url or gateway_setting("CARD_GATEWAY_A_BASE_URL"),
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
        if not payer_email:
            return InitializationResult(success=False, error="A payer email is required for card payments")

        body, error = self._request(
            "POST",
            "/transaction/initialize",
            json={
                "email": payer_email,
                "amount": to_minor_units(amount),
                "currency": currency,
                "reference": reference,
                "metadata": {**(metadata or {}), "payment_reference": reference},
            },
        )
        if error:
            return InitializationResult(success=False, raw_response=body, error=error)
        if not body.get("status"):
            return InitializationResult(
                success=False,
                raw_response=body,
                error=body.get("message") or "Transaction initialization failed",
            )

        data = body.get("data") or {}
        return InitializationResult(
            success=True,
            external_reference=data.get("access_code"),
            redirect_url=data.get("authorization_url"),
            raw_response=body,
        )

    def verify_payment(self, reference: str, external_reference: str | None = None) -> VerificationResult:
        body, error = self._request("GET", f"/transaction/verify/{reference}")
        if error:
            return VerificationResult(status=GatewayStatus.PENDING, raw_response=body, error=error)

        data = body.get("data") or {}
        status = _TRANSACTION_STATUS.get(str(data.get("status", "")).lower(), GatewayStatus.PENDING)
        gateway_id = data.get("id")
        return VerificationResult(
            status=status,
            external_reference=str(gateway_id) if gateway_id is not None else external_reference,
            amount=from_minor_units(data.get("amount")),
            raw_response=body,
        )

    def refund_payment(self, reference: str, amount: float | None = None, reason: str | None = None) -> RefundResult:
        payload: dict[str, Any] = {"transaction": reference}
        if amount is not None:
            payload["amount"] = to_minor_units(amount)
        if reason:
            payload["merchant_note"] = reason

        body, error = self._request("POST", "/refund", json=payload)
        if error or not body.get("status"):
            return RefundResult(success=False, raw_response=body, error=error or body.get("message") or "Refund failed")

        data = body.get("data") or {}
        refund_id = data.get("id")
        return RefundResult(
            success=True,
            refund_reference=str(refund_id) if refund_id is not None else None,
            raw_response=body,
        )

    def process_webhook(self, payload: bytes, signature: str) -> WebhookResult:
        expected = hmac_hexdigest(self.secret_key, payload, hashlib.sha512)
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
        if not isinstance(metadata, dict):
            metadata = {}
        reference = metadata.get("payment_reference") or data.get("reference")
        gateway_id = data.get("id")

        return WebhookResult(
            success=True,
            reference=reference,
            status=_EVENT_STATUS.get(event_type, GatewayStatus.UNHANDLED),
            external_reference=str(gateway_id) if gateway_id is not None else None,
            amount=from_minor_units(data.get("amount")),
            event_type=event_type,
            raw_response=body,
        )
