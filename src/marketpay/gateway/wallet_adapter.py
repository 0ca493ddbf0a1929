"""Internal wallet rail.

Wallet payments settle synchronously inside the orchestrator's unit of work,
so this adapter never moves money itself. It exists so every payment method
resolves to an adapter with the same contract.
"""

from typing import Any

from marketpay.gateway.port import (
    GatewayStatus,
    InitializationResult,
    PaymentGateway,
    RefundResult,
    VerificationResult,
    WebhookResult,
)


class WalletGateway(PaymentGateway):
    name = "wallet"

    def initialize_payment(
        self,
        amount: float,
        currency: str,
        reference: str,
        payer_email: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> InitializationResult:
        return InitializationResult(
            success=True,
            external_reference=f"WALLET-{reference}",
            raw_response={"rail": "wallet", "reference": reference, "amount": amount, "currency": currency},
        )

    def verify_payment(self, reference: str, external_reference: str | None = None) -> VerificationResult:
        return VerificationResult(
            status=GatewayStatus.COMPLETED,
            external_reference=external_reference or f"WALLET-{reference}",
            raw_response={"rail": "wallet", "reference": reference},
        )

    def refund_payment(self, reference: str, amount: float | None = None, reason: str | None = None) -> RefundResult:
        return RefundResult(
            success=True,
            refund_reference=f"WALLET-REFUND-{reference}",
            raw_response={"rail": "wallet", "amount": amount, "reason": reason},
        )

    def process_webhook(self, payload: bytes, signature: str) -> WebhookResult:  # noqa: ARG002
        return WebhookResult.rejected("Wallet payments do not emit webhooks")
