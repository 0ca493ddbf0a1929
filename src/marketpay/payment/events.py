"""Domain events for the Payment aggregate.

Events are persisted to the event store and drive:
- Customer and vendor notifications (PaymentNotificationHandler)
- Cross-domain communication via Redis Streams in production
"""

from protean.fields import Boolean, DateTime, Float, Identifier, String

from marketpay.domain import marketpay


@marketpay.event(part_of="Payment")
class PaymentInitiated:
    """A payment was opened for an order or a wallet top-up."""

    __version__ = 1

    payment_id = Identifier(required=True)
    payment_reference = String(required=True)
    order_id = Identifier()
    user_id = Identifier(required=True)
    vendor_id = Identifier()
    payment_method = String(required=True)
    purpose = String(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    initiated_at = DateTime(required=True)


@marketpay.event(part_of="Payment")
class PaymentProcessing:
    """The gateway accepted the payment and is waiting on the payer."""

    __version__ = 1

    payment_id = Identifier(required=True)
    payment_reference = String(required=True)
    external_reference = String()
    redirect_url = String()
    processing_at = DateTime(required=True)


@marketpay.event(part_of="Payment")
class PaymentCompleted:
    """Money was captured and credited to the payee."""

    __version__ = 1

    payment_id = Identifier(required=True)
    payment_reference = String(required=True)
    order_id = Identifier()
    user_id = Identifier(required=True)
    vendor_id = Identifier()
    purpose = String(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    commission_amount = Float(required=True)
    vendor_amount = Float(required=True)
    completed_at = DateTime(required=True)


@marketpay.event(part_of="Payment")
class PaymentFailed:
    """The gateway declined the payment or could not be reached."""

    __version__ = 1

    payment_id = Identifier(required=True)
    payment_reference = String(required=True)
    order_id = Identifier()
    user_id = Identifier(required=True)
    purpose = String(required=True)
    reason = String(required=True)
    failed_at = DateTime(required=True)


@marketpay.event(part_of="Payment")
class PaymentCancelled:
    """The payer abandoned the payment or the gateway session expired."""

    __version__ = 1

    payment_id = Identifier(required=True)
    payment_reference = String(required=True)
    order_id = Identifier()
    user_id = Identifier(required=True)
    purpose = String(required=True)
    reason = String()
    cancelled_at = DateTime(required=True)


@marketpay.event(part_of="Payment")
class PaymentRefunded:
    """Part or all of a completed payment was returned to the payer."""

    __version__ = 1

    payment_id = Identifier(required=True)
    payment_reference = String(required=True)
    order_id = Identifier()
    user_id = Identifier(required=True)
    amount = Float(required=True)
    refunded_total = Float(required=True)
    fully_refunded = Boolean(required=True)
    reason = String()
    refund_reference = String()
    refunded_at = DateTime(required=True)
