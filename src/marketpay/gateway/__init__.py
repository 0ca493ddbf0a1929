"""Payment gateway registry.

Resolves the adapter for a payment method (or webhook provider). Adapters
are built lazily from configuration and cached; tests and the
``/payments/gateway/configure`` endpoint swap in ``FakeGateway`` instances:

    set_gateway(PaymentMethod.CARD_GATEWAY_A, FakeGateway())
"""

from marketpay.gateway.methods import (
    METHOD_FOR_PROVIDER,
    PaymentMethod,
    PaymentProvider,
)
from marketpay.gateway.port import PaymentGateway


def _build(method: PaymentMethod) -> PaymentGateway:
    if method == PaymentMethod.WALLET:
        from marketpay.gateway.wallet_adapter import WalletGateway

        return WalletGateway()
    if method == PaymentMethod.CARD_GATEWAY_A:
        from marketpay.gateway.card_a_adapter import CardGatewayA

        return CardGatewayA()
    if method == PaymentMethod.CARD_GATEWAY_B:
        from marketpay.gateway.card_b_adapter import CardGatewayB

        return CardGatewayB()
    if method == PaymentMethod.BANK_GATEWAY:
        from marketpay.gateway.bank_adapter import BankGateway

        return BankGateway()
    raise ValueError(f"Unsupported payment method: {method}")


_gateways: dict[PaymentMethod, PaymentGateway] = {}


def get_gateway(method: PaymentMethod | str) -> PaymentGateway:
    """Return the adapter for a payment method, building it on first use."""
    method = PaymentMethod(method)
    if method not in _gateways:
        _gateways[method] = _build(method)
    return _gateways[method]


def get_gateway_for_provider(provider: PaymentProvider | str) -> PaymentGateway:
    return get_gateway(METHOD_FOR_PROVIDER[PaymentProvider(provider)])


def set_gateway(method: PaymentMethod | str, gateway: PaymentGateway) -> None:
    """Override the adapter used for a payment method (useful for tests)."""
    _gateways[PaymentMethod(method)] = gateway


def reset_gateways() -> None:
    """Drop every cached adapter; the next lookup rebuilds from configuration."""
    for gateway in _gateways.values():
        close = getattr(gateway, "close", None)
        if close is not None:
            close()
    _gateways.clear()
