"""Webhook reconciliation.

Turns an authenticated gateway callback into the same state changes a
verification call would make. Outcomes, and the HTTP status each maps to:

    rejected   400  bad signature, malformed body or wrong provider
    ignored    200  event type the adapter does not act on
    not_found  404  reference matches no payment
    processed  200  applied, or already applied by an earlier delivery

Gateways redeliver webhooks freely, so applying one twice must change
nothing the second time.
"""

import json
from dataclasses import dataclass
from enum import Enum

import structlog
from protean import handle
from protean.fields import Float, String, Text
from protean.utils.globals import current_domain

from marketpay.domain import marketpay
from marketpay.gateway import get_gateway_for_provider
from marketpay.gateway.methods import PaymentProvider
from marketpay.gateway.port import GatewayStatus
from marketpay.payment.funding import CompleteWalletFunding
from marketpay.payment.lookup import amount_matches, get_payment_by_reference
from marketpay.payment.payment import Payment
from marketpay.payment.references import is_wallet_funding
from marketpay.payment.settlement import abandon, apply_gateway_status

logger = structlog.get_logger(__name__)


class ReconciliationStatus(Enum):
    PROCESSED = "processed"
    IGNORED = "ignored"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"


_HTTP_STATUS = {
    ReconciliationStatus.PROCESSED: 200,
    ReconciliationStatus.IGNORED: 200,
    ReconciliationStatus.REJECTED: 400,
    ReconciliationStatus.NOT_FOUND: 404,
}


@dataclass(frozen=True)
class ReconciliationOutcome:
    status: ReconciliationStatus
    reference: str | None = None
    event_type: str | None = None
    changed: bool = False

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self.status]

    def body(self) -> dict:
        return {"status": self.status.value}


@marketpay.command(part_of="Payment")
class ApplyGatewayEvent:
    payment_reference = String(required=True, max_length=64)
    status = String(required=True, choices=GatewayStatus)
    external_reference = String(max_length=255)
    amount = Float()
    event_type = String(max_length=100)
    gateway_response = Text()  # JSON


@marketpay.command_handler(part_of=Payment)
class GatewayEventHandler:
    @handle(ApplyGatewayEvent)
    def apply_gateway_event(self, command):
        payment = get_payment_by_reference(command.payment_reference)
        status = GatewayStatus(command.status)
        gateway_response = json.loads(command.gateway_response) if command.gateway_response else None

        if status == GatewayStatus.COMPLETED and not payment.is_finished and not amount_matches(payment, command.amount):
            logger.warning(
                "Webhook reported a different amount",
                payment_reference=payment.payment_reference,
                expected=payment.amount,
                reported=command.amount,
            )
            return abandon(
                payment,
                GatewayStatus.FAILED,
                reason=f"Amount mismatch: expected {payment.amount:.2f}, gateway reported {command.amount:.2f}",
                gateway_response=gateway_response,
            )

        return apply_gateway_status(
            payment,
            status,
            external_reference=command.external_reference,
            gateway_response=gateway_response,
            reason=f"Gateway reported {command.event_type or status.value}",
        )


class WebhookReconciler:
    """Authenticates a webhook with its provider's adapter and applies it."""

    def reconcile(self, provider: PaymentProvider | str, payload: bytes, signature: str | None) -> ReconciliationOutcome:
        provider = PaymentProvider(provider)
        gateway = get_gateway_for_provider(provider)
        result = gateway.process_webhook(payload, signature or "")

        if not result.success:
            logger.warning("Webhook rejected", provider=provider.value, error=result.error)
            return ReconciliationOutcome(status=ReconciliationStatus.REJECTED)

        if result.status in (GatewayStatus.UNHANDLED, GatewayStatus.PENDING):
            logger.info("Webhook event ignored", provider=provider.value, event_type=result.event_type)
            return ReconciliationOutcome(
                status=ReconciliationStatus.IGNORED,
                reference=result.reference,
                event_type=result.event_type,
            )

        if not result.reference:
            logger.warning("Webhook carries no payment reference", provider=provider.value, event_type=result.event_type)
            return ReconciliationOutcome(status=ReconciliationStatus.NOT_FOUND, event_type=result.event_type)

        payment = current_domain.repository_for(Payment).find_by_reference(result.reference)
        if payment is None:
            logger.warning(
                "Webhook for unknown payment reference",
                provider=provider.value,
                reference=result.reference,
                event_type=result.event_type,
            )
            return ReconciliationOutcome(
                status=ReconciliationStatus.NOT_FOUND,
                reference=result.reference,
                event_type=result.event_type,
            )
        if payment.provider != provider.value:
            logger.warning(
                "Webhook provider does not match payment",
                provider=provider.value,
                payment_provider=payment.provider,
                reference=result.reference,
            )
            return ReconciliationOutcome(status=ReconciliationStatus.REJECTED, reference=result.reference)

        gateway_response = json.dumps(result.raw_response, default=str)
        if is_wallet_funding(result.reference) and result.status == GatewayStatus.COMPLETED and amount_matches(
            payment, result.amount
        ):
            before = payment.status
            summary = current_domain.process(
                CompleteWalletFunding(
                    payment_reference=result.reference,
                    external_reference=result.external_reference,
                    gateway_response=gateway_response,
                ),
                asynchronous=False,
            )
            changed = summary["status"] != before
        else:
            changed = current_domain.process(
                ApplyGatewayEvent(
                    payment_reference=result.reference,
                    status=result.status.value,
                    external_reference=result.external_reference,
                    amount=result.amount,
                    event_type=result.event_type,
                    gateway_response=gateway_response,
                ),
                asynchronous=False,
            )

        logger.info(
            "Webhook processed",
            provider=provider.value,
            reference=result.reference,
            event_type=result.event_type,
            changed=bool(changed),
        )
        return ReconciliationOutcome(
            status=ReconciliationStatus.PROCESSED,
            reference=result.reference,
            event_type=result.event_type,
            changed=bool(changed),
        )
