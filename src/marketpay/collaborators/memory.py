"""In-memory collaborators: record every interaction for tests and local runs."""

from dataclasses import replace
from typing import Any

from marketpay.actors import Actor
from marketpay.collaborators.ports import (
    CartService,
    NotificationKind,
    Notifier,
    OrderPaymentStatus,
    OrderService,
    OrderSnapshot,
    OrderStatus,
)


class InMemoryOrderService(OrderService):
    def __init__(self) -> None:
        self.orders: dict[str, OrderSnapshot] = {}
        self.status_updates: list[dict] = []

    def add(self, order: OrderSnapshot) -> OrderSnapshot:
        self.orders[str(order.id)] = order
        return order

    def find_by_id(self, order_id: str) -> OrderSnapshot | None:
        return self.orders.get(str(order_id))

    def update_payment_and_order_status(
        self,
        order_id: str,
        payment_status: OrderPaymentStatus,
        order_status: OrderStatus,
        payment_reference: str | None = None,
    ) -> None:
        order = self.orders.get(str(order_id))
        if order is not None:
            self.orders[str(order_id)] = replace(
                order,
                payment_status=payment_status.value,
                status=order_status.value,
            )
        self.status_updates.append(
            {
                "order_id": str(order_id),
                "payment_status": payment_status.value,
                "order_status": order_status.value,
                "payment_reference": payment_reference,
            }
        )

    def reset(self) -> None:
        self.orders.clear()
        self.status_updates.clear()


class InMemoryCartService(CartService):
    def __init__(self) -> None:
        self.released: list[tuple[str, str, str]] = []

    def deactivate_items_for_vendor_order(self, customer_id: str, vendor_id: str, order_id: str) -> None:
        self.released.append((str(customer_id), str(vendor_id), str(order_id)))

    def reset(self) -> None:
        self.released.clear()


class InMemoryNotifier(Notifier):
    """Notifier that keeps every message in memory for assertions."""

    def __init__(self) -> None:
        self.sent: list[dict] = []

    def notify(self, recipient: Actor, kind: NotificationKind, payload: dict[str, Any]) -> None:
        self.sent.append({"recipient": recipient, "kind": NotificationKind(kind), "payload": dict(payload)})

    def sent_to(self, recipient: Actor, kind: NotificationKind | None = None) -> list[dict]:
        return [
            message
            for message in self.sent
            if message["recipient"] == recipient and (kind is None or message["kind"] == kind)
        ]

    def reset(self) -> None:
        self.sent.clear()
