import pytest
from protean.integrations.pytest import DomainFixture

from marketpay.collaborators import get_cart_service, get_notifier, get_order_service, reset_collaborators
from marketpay.collaborators.ports import OrderSnapshot
from marketpay.gateway import get_gateway, reset_gateways, set_gateway
from marketpay.gateway.fake_adapter import FakeGateway
from marketpay.gateway.methods import PaymentMethod
from marketpay.wallet import ledger
from marketpay.withdrawal.otp_store import InMemoryOTPStore, reset_otp_store, set_otp_store

_EXTERNAL_METHODS = (PaymentMethod.CARD_GATEWAY_A, PaymentMethod.CARD_GATEWAY_B, PaymentMethod.BANK_GATEWAY)


@pytest.fixture(scope="session")
def marketpay_bed():
    from marketpay.domain import marketpay

    bed = DomainFixture(marketpay)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(marketpay_bed):
    with marketpay_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def _fresh_infrastructure():
    """Fake gateways on every external rail, fresh collaborators and OTP store."""
    reset_gateways()
    reset_collaborators()
    reset_otp_store()
    for method in _EXTERNAL_METHODS:
        set_gateway(method, FakeGateway())
    set_otp_store(InMemoryOTPStore())
    yield
    reset_gateways()
    reset_collaborators()
    reset_otp_store()


@pytest.fixture()
def commission_rate(monkeypatch):
    """Set the platform commission rate for one test."""
    from marketpay.domain import marketpay

    def _set(rate: float) -> None:
        monkeypatch.setattr(marketpay, "COMMISSION_RATE", rate, raising=False)

    return _set


@pytest.fixture()
def withdrawal_fee(monkeypatch):
    from marketpay.domain import marketpay

    def _set(fee: float) -> None:
        monkeypatch.setattr(marketpay, "WITHDRAWAL_FEE", fee, raising=False)

    return _set


@pytest.fixture()
def orders():
    return get_order_service()


@pytest.fixture()
def cart():
    return get_cart_service()


@pytest.fixture()
def notifier():
    return get_notifier()


@pytest.fixture()
def card_gateway():
    """The FakeGateway behind CARD_GATEWAY_A."""
    return get_gateway(PaymentMethod.CARD_GATEWAY_A)


@pytest.fixture()
def place_order(orders):
    """Register an order with the order service and return it."""
    counter = {"n": 0}

    def _place(total_amount=5000.0, customer_id="cust-001", vendor_id="vendor-001", currency="NGN", **overrides):
        counter["n"] += 1
        order = OrderSnapshot(
            id=overrides.pop("id", f"ord-{counter['n']:03d}"),
            customer_id=customer_id,
            vendor_id=vendor_id,
            total_amount=total_amount,
            currency=currency,
            customer_email=overrides.pop("customer_email", f"{customer_id}@example.com"),
            **overrides,
        )
        return orders.add(order)

    return _place


@pytest.fixture()
def fund():
    """Credit a user's wallet directly through the ledger."""

    def _fund(user_id, amount, reference_id="SEED", description="Seed balance"):
        return ledger.credit(user_id, amount, reference_id=reference_id, description=description)

    return _fund
