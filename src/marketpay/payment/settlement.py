"""Settling and abandoning payments.

Whatever reports the outcome of a payment (the wallet rail, a verification
call or a webhook), the consequences are applied here, so each one happens
exactly once:

- order payment completed: vendor credited net of commission, order paid
- wallet top-up completed: payer's wallet credited in full
- failed or cancelled: order cancelled and its cart items released

Each function returns False, changing nothing, when the payment has
already reached the outcome. That is what makes replays harmless.
"""

import structlog
from protean.utils.globals import current_domain

from marketpay.collaborators import get_cart_service, get_order_service
from marketpay.collaborators.ports import OrderPaymentStatus, OrderStatus
from marketpay.gateway.port import GatewayStatus
from marketpay.payment.payment import Payment, PaymentStatus
from marketpay.wallet import ledger

logger = structlog.get_logger(__name__)


def settle(payment: Payment, external_reference=None, gateway_response=None) -> bool:
    """Complete a payment and post its ledger entries, once."""
    if payment.is_settled:
        logger.info(
            "Payment already settled, ignoring",
            payment_reference=payment.payment_reference,
            status=payment.status,
        )
        return False

    if payment.is_wallet_funding:
        ledger.credit(
            payment.user_id,
            payment.amount,
            reference_id=payment.payment_reference,
            description="Wallet funding",
            metadata={"payment_id": str(payment.id), "payment_method": payment.payment_method},
        )
        payment.complete(
            commission_amount=0.0,
            external_reference=external_reference,
            gateway_response=gateway_response,
        )
    else:
        commission, vendor_amount = ledger.split_commission(payment.amount)
        ledger.credit(
            payment.vendor_id,
            vendor_amount,
            reference_id=payment.payment_reference,
            description=f"Payment for order {payment.order_id}",
            metadata={
                "payment_id": str(payment.id),
                "order_id": str(payment.order_id),
                "gross_amount": payment.amount,
                "commission_amount": commission,
                "vendor_amount": vendor_amount,
            },
        )
        payment.complete(
            commission_amount=commission,
            external_reference=external_reference,
            gateway_response=gateway_response,
        )
        get_order_service().update_payment_and_order_status(
            payment.order_id,
            OrderPaymentStatus.PAID,
            OrderStatus.CONFIRMED,
            payment_reference=payment.payment_reference,
        )

    current_domain.repository_for(Payment).add(payment)
    logger.info(
        "Payment completed",
        payment_id=str(payment.id),
        payment_reference=payment.payment_reference,
        amount=payment.amount,
        commission_amount=payment.commission_amount,
    )
    return True


def abandon(payment: Payment, status: GatewayStatus, reason: str | None = None, gateway_response=None) -> bool:
    """Mark a payment failed or cancelled and release what it was holding, once."""
    if PaymentStatus(payment.status) in (PaymentStatus.FAILED, PaymentStatus.CANCELLED) or payment.is_settled:
        logger.info(
            "Payment already finished, ignoring",
            payment_reference=payment.payment_reference,
            status=payment.status,
        )
        return False

    if status == GatewayStatus.CANCELLED:
        payment.cancel(reason or "Payment cancelled", gateway_response=gateway_response)
    else:
        payment.fail(reason or "Payment failed", gateway_response=gateway_response)

    if not payment.is_wallet_funding and payment.order_id:
        get_order_service().update_payment_and_order_status(
            payment.order_id,
            OrderPaymentStatus.FAILED,
            OrderStatus.CANCELLED,
            payment_reference=payment.payment_reference,
        )
        get_cart_service().deactivate_items_for_vendor_order(payment.user_id, payment.vendor_id, payment.order_id)

    current_domain.repository_for(Payment).add(payment)
    logger.info(
        "Payment abandoned",
        payment_id=str(payment.id),
        payment_reference=payment.payment_reference,
        status=payment.status,
        reason=payment.failure_reason,
    )
    return True


def apply_gateway_status(payment: Payment, status: GatewayStatus, external_reference=None, gateway_response=None, reason=None) -> bool:
    """Route a gateway-reported status to ``settle`` or ``abandon``.

    PENDING and UNHANDLED leave the payment as it is.
    """
    if status == GatewayStatus.COMPLETED:
        return settle(payment, external_reference=external_reference, gateway_response=gateway_response)
    if status in (GatewayStatus.FAILED, GatewayStatus.CANCELLED):
        return abandon(payment, status, reason=reason, gateway_response=gateway_response)
    return False
