"""Payment notifications: tells payers and vendors how their payments went.

Runs as an event handler so a notification is only ever sent for a state
change that actually committed.
"""

import structlog
from protean import handle

from marketpay.actors import Actor
from marketpay.collaborators import get_notifier
from marketpay.collaborators.ports import NotificationKind
from marketpay.domain import marketpay
from marketpay.payment.events import PaymentCompleted, PaymentFailed, PaymentRefunded
from marketpay.payment.payment import Payment, PaymentPurpose

logger = structlog.get_logger(__name__)


@marketpay.event_handler(part_of=Payment)
class PaymentNotificationHandler:
    @handle(PaymentCompleted)
    def on_payment_completed(self, event: PaymentCompleted) -> None:
        notifier = get_notifier()
        payload = {
            "payment_reference": event.payment_reference,
            "amount": event.amount,
            "currency": event.currency,
        }

        if event.purpose == PaymentPurpose.WALLET_FUNDING.value:
            notifier.notify(Actor.user(event.user_id), NotificationKind.WALLET_FUNDED, payload)
            return

        notifier.notify(
            Actor.user(event.user_id),
            NotificationKind.PAYMENT_COMPLETED,
            {**payload, "order_id": event.order_id},
        )
        if event.vendor_id:
            notifier.notify(
                Actor.user(event.vendor_id),
                NotificationKind.PAYMENT_COMPLETED,
                {
                    **payload,
                    "order_id": event.order_id,
                    "vendor_amount": event.vendor_amount,
                    "commission_amount": event.commission_amount,
                },
            )
        logger.info("Payment completion notified", payment_reference=event.payment_reference)

    @handle(PaymentFailed)
    def on_payment_failed(self, event: PaymentFailed) -> None:
        get_notifier().notify(
            Actor.user(event.user_id),
            NotificationKind.PAYMENT_FAILED,
            {
                "payment_reference": event.payment_reference,
                "order_id": event.order_id,
                "reason": event.reason,
            },
        )

    @handle(PaymentRefunded)
    def on_payment_refunded(self, event: PaymentRefunded) -> None:
        get_notifier().notify(
            Actor.user(event.user_id),
            NotificationKind.PAYMENT_REFUNDED,
            {
                "payment_reference": event.payment_reference,
                "amount": event.amount,
                "refunded_total": event.refunded_total,
                "fully_refunded": event.fully_refunded,
            },
        )
