"""Collaborator registry.

In-memory collaborators are used until the host application wires in the
real order, cart and notification services at startup.
"""

from marketpay.collaborators.ports import CartService, Notifier, OrderService

_instances: dict[str, object] = {}


def get_order_service() -> OrderService:
    if "orders" not in _instances:
        from marketpay.collaborators.memory import InMemoryOrderService

        _instances["orders"] = InMemoryOrderService()
    return _instances["orders"]


def get_cart_service() -> CartService:
    if "cart" not in _instances:
        from marketpay.collaborators.memory import InMemoryCartService

        _instances["cart"] = InMemoryCartService()
    return _instances["cart"]


def get_notifier() -> Notifier:
    if "notifier" not in _instances:
        from marketpay.collaborators.memory import InMemoryNotifier

        _instances["notifier"] = InMemoryNotifier()
    return _instances["notifier"]


def set_order_service(service: OrderService) -> None:
    _instances["orders"] = service


def set_cart_service(service: CartService) -> None:
    _instances["cart"] = service


def set_notifier(notifier: Notifier) -> None:
    _instances["notifier"] = notifier


def reset_collaborators() -> None:
    """Drop every collaborator singleton (useful for testing)."""
    _instances.clear()
