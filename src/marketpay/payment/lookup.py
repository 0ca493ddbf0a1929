"""Payment lookups shared by handlers and the API."""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from marketpay.payment.payment import Payment


def get_payment(payment_id) -> Payment:
    return current_domain.repository_for(Payment).get(payment_id)


def get_payment_by_reference(payment_reference: str) -> Payment:
    payment = current_domain.repository_for(Payment).find_by_reference(payment_reference)
    if payment is None:
        raise ObjectNotFoundError(f"Payment {payment_reference} not found")
    return payment


def amount_matches(payment: Payment, reported_amount: float | None) -> bool:
    """Gateways that report no amount are trusted; others must match to the cent."""
    if reported_amount is None:
        return True
    return round(float(reported_amount), 2) == round(payment.amount, 2)
