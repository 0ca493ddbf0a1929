"""ProcessPayment: take payment for an order through the chosen rail.

The wallet rail settles inside this handler: the customer is debited, the
vendor credited net of commission and the order marked paid, all in one
unit of work. External rails only open the payment with their gateway. The
outcome arrives later through VerifyPayment or a webhook.
"""

import json

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from marketpay.collaborators import get_order_service
from marketpay.domain import marketpay
from marketpay.gateway import get_gateway
from marketpay.gateway.methods import PaymentMethod, parse_method
from marketpay.payment.payment import Payment, PaymentPurpose
from marketpay.payment.settlement import settle
from marketpay.wallet import ledger

logger = structlog.get_logger(__name__)


@marketpay.command(part_of="Payment")
class ProcessPayment:
    order_id = Identifier(required=True)
    payment_method = String(required=True, max_length=30)
    payer_email = String(max_length=254)
    metadata = Text()  # JSON object


@marketpay.command_handler(part_of=Payment)
class ProcessPaymentHandler:
    @handle(ProcessPayment)
    def process_payment(self, command):
        order = get_order_service().find_by_id(command.order_id)
        if order is None:
            raise ObjectNotFoundError(f"Order {command.order_id} not found")

        try:
            method = parse_method(command.payment_method)
        except ValueError as exc:
            raise ValidationError({"payment_method": [str(exc)]}) from exc

        repo = current_domain.repository_for(Payment)
        if repo.live_for_order(order.id):
            raise ValidationError({"order_id": ["Payment already exists for this order"]})

        metadata = json.loads(command.metadata) if command.metadata else {}
        payment = Payment.initiate(
            user_id=order.customer_id,
            payment_method=method,
            amount=order.total_amount,
            currency=order.currency,
            purpose=PaymentPurpose.ORDER,
            order_id=order.id,
            vendor_id=order.vendor_id,
            metadata=metadata,
        )
        logger.info(
            "Processing payment",
            order_id=str(order.id),
            payment_reference=payment.payment_reference,
            payment_method=method.value,
            amount=payment.amount,
        )

        gateway = get_gateway(method)
        result = gateway.initialize_payment(
            amount=payment.amount,
            currency=payment.currency,
            reference=payment.payment_reference,
            payer_email=command.payer_email or order.customer_email,
            metadata={**metadata, "order_id": str(order.id), "user_id": str(order.customer_id)},
        )

        if not result.success:
            logger.warning(
                "Gateway refused payment",
                payment_reference=payment.payment_reference,
                gateway=gateway.name,
                error=result.error,
            )
            payment.fail(result.error or "Payment initialization failed", gateway_response=result.raw_response)
            repo.add(payment)
            return payment.summary()

        if method == PaymentMethod.WALLET:
            ledger.debit(
                order.customer_id,
                payment.amount,
                reference_id=payment.payment_reference,
                description=f"Payment for order {order.id}",
                metadata={"payment_id": str(payment.id), "order_id": str(order.id)},
            )
            settle(payment, external_reference=result.external_reference, gateway_response=result.raw_response)
        else:
            payment.mark_processing(
                external_reference=result.external_reference,
                redirect_url=result.redirect_url,
                gateway_response=result.raw_response,
            )
            repo.add(payment)

        return payment.summary()
