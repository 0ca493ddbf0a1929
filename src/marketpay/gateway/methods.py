"""Payment methods offered at checkout and the provider behind each one."""

from enum import Enum


class PaymentMethod(Enum):
    WALLET = "WALLET"
    CARD_GATEWAY_A = "CARD_GATEWAY_A"
    CARD_GATEWAY_B = "CARD_GATEWAY_B"
    BANK_GATEWAY = "BANK_GATEWAY"


class PaymentProvider(Enum):
    WALLET = "wallet"
    CARD_A = "card-a"
    CARD_B = "card-b"
    BANK = "bank"


PROVIDER_FOR_METHOD = {
    PaymentMethod.WALLET: PaymentProvider.WALLET,
    PaymentMethod.CARD_GATEWAY_A: PaymentProvider.CARD_A,
    PaymentMethod.CARD_GATEWAY_B: PaymentProvider.CARD_B,
    PaymentMethod.BANK_GATEWAY: PaymentProvider.BANK,
}

METHOD_FOR_PROVIDER = {provider: method for method, provider in PROVIDER_FOR_METHOD.items()}

if set(PROVIDER_FOR_METHOD) != set(PaymentMethod) or len(METHOD_FOR_PROVIDER) != len(PaymentProvider):
    raise RuntimeError("Every payment method must map to exactly one provider")


def parse_method(value: str) -> PaymentMethod:
    """Resolve a method name, raising ValueError for anything unsupported."""
    try:
        return PaymentMethod(str(value).upper())
    except ValueError:
        raise ValueError(f"Unsupported payment method: {value}") from None


def parse_provider(value: str) -> PaymentProvider:
    try:
        return PaymentProvider(str(value).lower())
    except ValueError:
        raise ValueError(f"Unsupported payment provider: {value}") from None
