"""RefundPayment: return part or all of a completed payment.

Wallet payments are refunded inside the ledger: the vendor's share comes
back out of their wallet as a REVERSAL and the customer receives a REFUND
credit. External payments go back through their gateway, but only after
the vendor's wallet is known to cover the reversal.

The vendor gives back their share of the refund in proportion to what they
received, so the platform's commission is returned in the same proportion.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from marketpay.collaborators import get_order_service
from marketpay.collaborators.ports import OrderPaymentStatus, OrderStatus
from marketpay.domain import marketpay
from marketpay.gateway import get_gateway
from marketpay.gateway.methods import PaymentMethod
from marketpay.gateway.port import GatewayError
from marketpay.payment.payment import Payment
from marketpay.wallet import ledger
from marketpay.wallet.transaction import Transaction, TransactionType
from marketpay.wallet.wallet import InsufficientFunds

logger = structlog.get_logger(__name__)


@marketpay.command(part_of="Payment")
class RefundPayment:
    payment_id = Identifier(required=True)
    amount = Float()
    reason = String(max_length=500)


@marketpay.command_handler(part_of=Payment)
class RefundPaymentHandler:
    @handle(RefundPayment)
    def refund_payment(self, command):
        repo = current_domain.repository_for(Payment)
        payment = repo.get(command.payment_id)

        if not payment.is_settled or payment.refundable_amount <= 0:
            raise ValidationError({"status": ["Only completed payments can be refunded"]})

        amount = round(command.amount, 2) if command.amount is not None else payment.refundable_amount
        if amount <= 0 or amount > payment.refundable_amount:
            raise ValidationError(
                {"amount": [f"Refund amount must be between 0 and {payment.refundable_amount:.2f}"]}
            )

        if payment.is_wallet_funding:
            # The top-up leaves the wallet again; the gateway returns it to the card
            debtor_id, debit_amount = payment.user_id, amount
        else:
            debtor_id, debit_amount = payment.vendor_id, _vendor_share(payment, amount)

        # The ledger side must be payable before any money moves at the gateway
        if debit_amount > 0:
            wallet = ledger.wallet_for(debtor_id)
            if not wallet.has_funds(debit_amount):
                raise InsufficientFunds(wallet.balance or 0.0, debit_amount)

        gateway = get_gateway(payment.payment_method)
        if payment.payment_method == PaymentMethod.WALLET.value:
            gateway_reference = payment.payment_reference
        else:
            gateway_reference = payment.external_reference or payment.payment_reference
        result = gateway.refund_payment(gateway_reference, amount=amount, reason=command.reason)
        if not result.success:
            logger.warning(
                "Gateway refused refund",
                payment_reference=payment.payment_reference,
                gateway=gateway.name,
                error=result.error,
            )
            raise GatewayError(result.error or "Refund failed", reference=payment.payment_reference)

        description = f"Refund of {payment.payment_reference}"
        entry_metadata = {"payment_id": str(payment.id), "refund_reference": result.refund_reference}

        if debit_amount > 0:
            ledger.debit(
                debtor_id,
                debit_amount,
                reference_id=payment.payment_reference,
                description=description,
                metadata=entry_metadata if payment.is_wallet_funding else {**entry_metadata, "refund_amount": amount},
                transaction_type=TransactionType.REVERSAL,
            )
        if not payment.is_wallet_funding and payment.payment_method == PaymentMethod.WALLET.value:
            ledger.credit(
                payment.user_id,
                amount,
                reference_id=payment.payment_reference,
                description=description,
                metadata=entry_metadata,
                transaction_type=TransactionType.REFUND,
            )

        payment.record_refund(amount, reason=command.reason, refund_reference=result.refund_reference)
        repo.add(payment)

        if payment.order_id and payment.refundable_amount == 0:
            get_order_service().update_payment_and_order_status(
                payment.order_id,
                OrderPaymentStatus.REFUNDED,
                OrderStatus.CANCELLED,
                payment_reference=payment.payment_reference,
            )

        logger.info(
            "Payment refunded",
            payment_reference=payment.payment_reference,
            amount=amount,
            refunded_total=payment.refunded_amount,
            status=payment.status,
        )
        return payment.summary()


def _vendor_share(payment, amount: float) -> float:
    """The part of a refund that comes back out of the vendor's wallet.

    Partial refunds take a rounded proportional share. The refund that
    empties the payment takes whatever is still unreversed, so the vendor's
    reversals always add up to exactly what they were credited.
    """
    if amount < payment.refundable_amount:
        return round(amount * payment.vendor_amount / payment.amount, 2)

    reversed_so_far = sum(
        row.amount
        for row in current_domain.repository_for(Transaction).for_reference(
            payment.vendor_id, payment.payment_reference
        )
        if row.transaction_type == TransactionType.REVERSAL.value
    )
    return max(round(payment.vendor_amount - reversed_so_far, 2), 0.0)
