"""Ports to the services MarketPay collaborates with but does not own.

Orders, carts and notification delivery live in other parts of the
marketplace. MarketPay only needs the narrow slice of each captured here.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

from marketpay.actors import Actor


class OrderPaymentStatus(Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class OrderStatus(Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class NotificationKind(Enum):
    PAYMENT_COMPLETED = "payment_completed"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_REFUNDED = "payment_refunded"
    WALLET_FUNDED = "wallet_funded"
    WITHDRAWAL_OTP = "withdrawal_otp"
    WITHDRAWAL_REQUESTED = "withdrawal_requested"
    WITHDRAWAL_PENDING_REVIEW = "withdrawal_pending_review"
    WITHDRAWAL_PROCESSING = "withdrawal_processing"
    WITHDRAWAL_COMPLETED = "withdrawal_completed"
    WITHDRAWAL_FAILED = "withdrawal_failed"
    WITHDRAWAL_REJECTED = "withdrawal_rejected"


@dataclass(frozen=True)
class OrderSnapshot:
    """What MarketPay needs to know about an order to take payment for it."""

    id: str
    customer_id: str
    vendor_id: str
    total_amount: float
    currency: str
    customer_email: str | None = None
    payment_status: str = OrderPaymentStatus.PENDING.value
    status: str = OrderStatus.PENDING.value


class OrderService(ABC):
    @abstractmethod
    def find_by_id(self, order_id: str) -> OrderSnapshot | None:
        """Return the order, or None when it does not exist."""
        ...

    @abstractmethod
    def update_payment_and_order_status(
        self,
        order_id: str,
        payment_status: OrderPaymentStatus,
        order_status: OrderStatus,
        payment_reference: str | None = None,
    ) -> None: ...


class CartService(ABC):
    @abstractmethod
    def deactivate_items_for_vendor_order(self, customer_id: str, vendor_id: str, order_id: str) -> None:
        """Release the cart items a customer holds from one vendor for an unpaid order."""
        ...


class Notifier(ABC):
    @abstractmethod
    def notify(self, recipient: Actor, kind: NotificationKind, payload: dict[str, Any]) -> None: ...
