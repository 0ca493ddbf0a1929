"""Withdrawal notifications.

New requests go to the user and to the admin desk. Every later status
change goes to the user.
"""

import structlog
from protean import handle

from marketpay.actors import ADMIN_DESK, Actor
from marketpay.collaborators import get_notifier
from marketpay.collaborators.ports import NotificationKind
from marketpay.domain import marketpay
from marketpay.withdrawal.events import (
    WithdrawalCompleted,
    WithdrawalFailed,
    WithdrawalProcessing,
    WithdrawalRejected,
    WithdrawalRequested,
)
from marketpay.withdrawal.withdrawal import Withdrawal

logger = structlog.get_logger(__name__)


@marketpay.event_handler(part_of=Withdrawal)
class WithdrawalNotificationHandler:
    @handle(WithdrawalRequested)
    def on_requested(self, event: WithdrawalRequested) -> None:
        notifier = get_notifier()
        payload = {
            "withdrawal_id": event.withdrawal_id,
            "user_id": event.user_id,
            "amount": event.amount,
            "fee": event.fee,
            "currency": event.currency,
            "bank_name": event.bank_name,
            "account_number": event.masked_account_number,
        }
        notifier.notify(Actor.user(event.user_id), NotificationKind.WITHDRAWAL_REQUESTED, payload)
        notifier.notify(ADMIN_DESK, NotificationKind.WITHDRAWAL_PENDING_REVIEW, payload)
        logger.info("Withdrawal request notified", withdrawal_id=str(event.withdrawal_id))

    @handle(WithdrawalProcessing)
    def on_processing(self, event: WithdrawalProcessing) -> None:
        get_notifier().notify(
            Actor.user(event.user_id),
            NotificationKind.WITHDRAWAL_PROCESSING,
            {"withdrawal_id": event.withdrawal_id, "amount": event.amount, "currency": event.currency},
        )

    @handle(WithdrawalCompleted)
    def on_completed(self, event: WithdrawalCompleted) -> None:
        get_notifier().notify(
            Actor.user(event.user_id),
            NotificationKind.WITHDRAWAL_COMPLETED,
            {
                "withdrawal_id": event.withdrawal_id,
                "amount": event.amount,
                "fee": event.fee,
                "currency": event.currency,
                "transaction_reference": event.transaction_reference,
            },
        )

    @handle(WithdrawalFailed)
    def on_failed(self, event: WithdrawalFailed) -> None:
        get_notifier().notify(
            Actor.user(event.user_id),
            NotificationKind.WITHDRAWAL_FAILED,
            {"withdrawal_id": event.withdrawal_id, "amount": event.amount, "reason": event.reason},
        )

    @handle(WithdrawalRejected)
    def on_rejected(self, event: WithdrawalRejected) -> None:
        get_notifier().notify(
            Actor.user(event.user_id),
            NotificationKind.WITHDRAWAL_REJECTED,
            {"withdrawal_id": event.withdrawal_id, "amount": event.amount, "reason": event.reason},
        )
