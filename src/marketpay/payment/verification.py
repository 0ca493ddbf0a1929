"""VerifyPayment: ask the gateway where a payment stands and act on it.

Used when the payer returns from the gateway's checkout page, and by
operators chasing a webhook that never arrived. Re-verifying a payment
that has already finished is a no-op.
"""

import structlog
from protean import handle
from protean.fields import String

from marketpay.domain import marketpay
from marketpay.gateway import get_gateway
from marketpay.gateway.methods import PaymentMethod
from marketpay.gateway.port import GatewayError, GatewayStatus
from marketpay.payment.lookup import amount_matches, get_payment_by_reference
from marketpay.payment.payment import Payment
from marketpay.payment.settlement import abandon, apply_gateway_status

logger = structlog.get_logger(__name__)


@marketpay.command(part_of="Payment")
class VerifyPayment:
    payment_reference = String(required=True, max_length=64)


@marketpay.command_handler(part_of=Payment)
class VerifyPaymentHandler:
    @handle(VerifyPayment)
    def verify_payment(self, command):
        payment = get_payment_by_reference(command.payment_reference)
        if payment.is_finished or payment.payment_method == PaymentMethod.WALLET.value:
            return payment.summary()

        gateway = get_gateway(payment.payment_method)
        result = gateway.verify_payment(payment.payment_reference, payment.external_reference)

        if result.error and not result.is_terminal:
            # Nothing is written; the caller may retry once the gateway recovers
            logger.warning(
                "Payment verification failed",
                payment_reference=payment.payment_reference,
                gateway=gateway.name,
                error=result.error,
            )
            raise GatewayError(result.error, reference=payment.payment_reference)

        if result.status == GatewayStatus.COMPLETED and not amount_matches(payment, result.amount):
            logger.warning(
                "Gateway reported a different amount",
                payment_reference=payment.payment_reference,
                expected=payment.amount,
                reported=result.amount,
            )
            abandon(
                payment,
                GatewayStatus.FAILED,
                reason=f"Amount mismatch: expected {payment.amount:.2f}, gateway reported {result.amount:.2f}",
                gateway_response=result.raw_response,
            )
            return payment.summary()

        apply_gateway_status(
            payment,
            result.status,
            external_reference=result.external_reference,
            gateway_response=result.raw_response,
            reason=result.error or f"Gateway reported {result.status.value}",
        )
        return payment.summary()
