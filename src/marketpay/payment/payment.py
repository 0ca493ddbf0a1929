"""Payment aggregate (CQRS): one attempt to take money through a gateway.

A Payment is created with a fresh reference, handed to the gateway for its
method, and finished either synchronously (the wallet rail) or later by a
verification call or a gateway webhook.

State Machine:
    PENDING → PROCESSING → COMPLETED | FAILED | CANCELLED
    PENDING → COMPLETED (wallet rail) | FAILED (gateway refused)
    COMPLETED → REFUNDED | PARTIALLY_REFUNDED
    PARTIALLY_REFUNDED → PARTIALLY_REFUNDED | REFUNDED
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String, Text

from marketpay.domain import marketpay
from marketpay.gateway.methods import PROVIDER_FOR_METHOD, PaymentMethod
from marketpay.payment.events import (
    PaymentCancelled,
    PaymentCompleted,
    PaymentFailed,
    PaymentInitiated,
    PaymentProcessing,
    PaymentRefunded,
)
from marketpay.payment.references import new_funding_reference, new_order_reference


class PaymentStatus(Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


class PaymentPurpose(Enum):
    ORDER = "ORDER"
    WALLET_FUNDING = "WALLET_FUNDING"


_VALID_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PROCESSING, PaymentStatus.COMPLETED, PaymentStatus.FAILED},
    PaymentStatus.PROCESSING: {PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.CANCELLED},
    PaymentStatus.COMPLETED: {PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED},
    PaymentStatus.PARTIALLY_REFUNDED: {PaymentStatus.PARTIALLY_REFUNDED, PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.CANCELLED: set(),
    PaymentStatus.REFUNDED: set(),
}

# A payment in one of these states still claims its order
LIVE_STATUSES = frozenset(
    {
        PaymentStatus.PENDING,
        PaymentStatus.PROCESSING,
        PaymentStatus.COMPLETED,
        PaymentStatus.PARTIALLY_REFUNDED,
        PaymentStatus.REFUNDED,
    }
)

SETTLED_STATUSES = frozenset({PaymentStatus.COMPLETED, PaymentStatus.PARTIALLY_REFUNDED, PaymentStatus.REFUNDED})


def _as_json(value) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else json.dumps(value, default=str)


@marketpay.aggregate
class Payment:
    payment_reference = String(max_length=64, required=True, unique=True)
    order_id = Identifier()
    user_id = Identifier(required=True)
    vendor_id = Identifier()
    payment_method = String(choices=PaymentMethod, required=True)
    provider = String(max_length=20, required=True)
    purpose = String(choices=PaymentPurpose, default=PaymentPurpose.ORDER.value)
    status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)

    amount = Float(required=True)
    currency = String(max_length=3, required=True)
    commission_amount = Float(default=0.0)
    vendor_amount = Float(default=0.0)
    refunded_amount = Float(default=0.0)

    external_reference = String(max_length=255)
    redirect_url = String(max_length=1000)
    gateway_response = Text()  # JSON, kept for audit
    failure_reason = String(max_length=500)
    metadata_json = Text()  # JSON object

    processed_at = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def amount_must_be_positive(self):
        if self.amount is not None and self.amount <= 0:
            raise ValidationError({"amount": ["Payment amount must be greater than zero"]})

    @invariant.post
    def split_must_add_up_once_settled(self):
        if self.status and PaymentStatus(self.status) in SETTLED_STATUSES:
            if round((self.commission_amount or 0) + (self.vendor_amount or 0), 2) != round(self.amount, 2):
                raise ValidationError({"vendor_amount": ["Commission and vendor amount must add up to the payment amount"]})

    @invariant.post
    def refunds_cannot_exceed_amount(self):
        if self.refunded_amount and self.amount and round(self.refunded_amount, 2) > round(self.amount, 2):
            raise ValidationError({"refunded_amount": ["Refunded amount cannot exceed the payment amount"]})

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def initiate(
        cls,
        user_id,
        payment_method,
        amount,
        currency,
        purpose=PaymentPurpose.ORDER,
        order_id=None,
        vendor_id=None,
        metadata=None,
    ):
        method = PaymentMethod(payment_method)
        purpose = PaymentPurpose(purpose)
        reference = new_funding_reference() if purpose == PaymentPurpose.WALLET_FUNDING else new_order_reference()
        now = datetime.now(UTC)

        payment = cls(
            payment_reference=reference,
            order_id=order_id,
            user_id=user_id,
            vendor_id=vendor_id,
            payment_method=method.value,
            provider=PROVIDER_FOR_METHOD[method].value,
            purpose=purpose.value,
            status=PaymentStatus.PENDING.value,
            amount=round(float(amount), 2),
            currency=currency.upper(),
            metadata_json=_as_json(metadata or {}),
            created_at=now,
            updated_at=now,
        )
        payment.raise_(
            PaymentInitiated(
                payment_id=str(payment.id),
                payment_reference=reference,
                order_id=str(order_id) if order_id else None,
                user_id=str(user_id),
                vendor_id=str(vendor_id) if vendor_id else None,
                payment_method=method.value,
                purpose=purpose.value,
                amount=payment.amount,
                currency=payment.currency,
                initiated_at=now,
            )
        )
        return payment

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_live(self) -> bool:
        return PaymentStatus(self.status) in LIVE_STATUSES

    @property
    def is_settled(self) -> bool:
        return PaymentStatus(self.status) in SETTLED_STATUSES

    @property
    def is_finished(self) -> bool:
        """Nothing a gateway reports can move this payment any more."""
        return not _VALID_TRANSITIONS[PaymentStatus(self.status)] & {
            PaymentStatus.COMPLETED,
            PaymentStatus.FAILED,
            PaymentStatus.CANCELLED,
        }

    @property
    def is_wallet_funding(self) -> bool:
        return self.purpose == PaymentPurpose.WALLET_FUNDING.value

    @property
    def metadata(self) -> dict:
        return json.loads(self.metadata_json) if self.metadata_json else {}

    # -------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------
    def _assert_can_transition(self, target_status: PaymentStatus) -> None:
        current = PaymentStatus(self.status)
        if target_status not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def mark_processing(self, external_reference=None, redirect_url=None, gateway_response=None) -> None:
        self._assert_can_transition(PaymentStatus.PROCESSING)
        now = datetime.now(UTC)
        self.status = PaymentStatus.PROCESSING.value
        self.external_reference = external_reference
        self.redirect_url = redirect_url
        self.gateway_response = _as_json(gateway_response)
        self.updated_at = now
        self.raise_(
            PaymentProcessing(
                payment_id=str(self.id),
                payment_reference=self.payment_reference,
                external_reference=external_reference,
                redirect_url=redirect_url,
                processing_at=now,
            )
        )

    def complete(self, commission_amount=0.0, external_reference=None, gateway_response=None) -> None:
        """Record capture. The payee's share is whatever the commission leaves."""
        self._assert_can_transition(PaymentStatus.COMPLETED)
        now = datetime.now(UTC)
        commission_amount = round(float(commission_amount), 2)

        with atomic_change(self):
            self.status = PaymentStatus.COMPLETED.value
            self.commission_amount = commission_amount
            self.vendor_amount = round(self.amount - commission_amount, 2)
            if external_reference:
                self.external_reference = external_reference
            if gateway_response is not None:
                self.gateway_response = _as_json(gateway_response)
            self.failure_reason = None
            self.processed_at = now
            self.updated_at = now

        self.raise_(
            PaymentCompleted(
                payment_id=str(self.id),
                payment_reference=self.payment_reference,
                order_id=str(self.order_id) if self.order_id else None,
                user_id=str(self.user_id),
                vendor_id=str(self.vendor_id) if self.vendor_id else None,
                purpose=self.purpose,
                amount=self.amount,
                currency=self.currency,
                commission_amount=self.commission_amount,
                vendor_amount=self.vendor_amount,
                completed_at=now,
            )
        )

    def fail(self, reason: str, gateway_response=None) -> None:
        self._assert_can_transition(PaymentStatus.FAILED)
        now = datetime.now(UTC)
        self.status = PaymentStatus.FAILED.value
        self.failure_reason = reason
        if gateway_response is not None:
            self.gateway_response = _as_json(gateway_response)
        self.processed_at = now
        self.updated_at = now
        self.raise_(
            PaymentFailed(
                payment_id=str(self.id),
                payment_reference=self.payment_reference,
                order_id=str(self.order_id) if self.order_id else None,
                user_id=str(self.user_id),
                purpose=self.purpose,
                reason=reason,
                failed_at=now,
            )
        )

    def cancel(self, reason: str | None = None, gateway_response=None) -> None:
        self._assert_can_transition(PaymentStatus.CANCELLED)
        now = datetime.now(UTC)
        self.status = PaymentStatus.CANCELLED.value
        self.failure_reason = reason
        if gateway_response is not None:
            self.gateway_response = _as_json(gateway_response)
        self.processed_at = now
        self.updated_at = now
        self.raise_(
            PaymentCancelled(
                payment_id=str(self.id),
                payment_reference=self.payment_reference,
                order_id=str(self.order_id) if self.order_id else None,
                user_id=str(self.user_id),
                purpose=self.purpose,
                reason=reason,
                cancelled_at=now,
            )
        )

    def record_refund(self, amount: float, reason: str | None = None, refund_reference: str | None = None) -> None:
        amount = round(float(amount), 2)
        if amount <= 0:
            raise ValidationError({"amount": ["Refund amount must be greater than zero"]})
        if not self.is_settled or self.status == PaymentStatus.REFUNDED.value:
            raise ValidationError({"status": ["Only completed payments can be refunded"]})

        refunded_total = round((self.refunded_amount or 0.0) + amount, 2)
        if refunded_total > round(self.amount, 2):
            raise ValidationError(
                {"amount": [f"Refund total ({refunded_total:.2f}) would exceed payment amount ({self.amount:.2f})"]}
            )

        fully_refunded = refunded_total == round(self.amount, 2)
        target = PaymentStatus.REFUNDED if fully_refunded else PaymentStatus.PARTIALLY_REFUNDED
        self._assert_can_transition(target)

        now = datetime.now(UTC)
        self.refunded_amount = refunded_total
        self.status = target.value
        self.updated_at = now
        self.raise_(
            PaymentRefunded(
                payment_id=str(self.id),
                payment_reference=self.payment_reference,
                order_id=str(self.order_id) if self.order_id else None,
                user_id=str(self.user_id),
                amount=amount,
                refunded_total=refunded_total,
                fully_refunded=fully_refunded,
                reason=reason,
                refund_reference=refund_reference,
                refunded_at=now,
            )
        )

    @property
    def refundable_amount(self) -> float:
        return round(self.amount - (self.refunded_amount or 0.0), 2)

    def summary(self) -> dict:
        return {
            "payment_id": str(self.id),
            "payment_reference": self.payment_reference,
            "order_id": str(self.order_id) if self.order_id else None,
            "user_id": str(self.user_id),
            "vendor_id": str(self.vendor_id) if self.vendor_id else None,
            "payment_method": self.payment_method,
            "provider": self.provider,
            "purpose": self.purpose,
            "status": self.status,
            "amount": self.amount,
            "currency": self.currency,
            "commission_amount": self.commission_amount,
            "vendor_amount": self.vendor_amount,
            "refunded_amount": self.refunded_amount,
            "external_reference": self.external_reference,
            "redirect_url": self.redirect_url,
            "failure_reason": self.failure_reason,
            "metadata": self.metadata,
            "processed_at": self.processed_at,
            "created_at": self.created_at,
        }


@marketpay.repository(part_of=Payment)
class PaymentRepository:
    def find_by_reference(self, payment_reference: str) -> Payment | None:
        return self.query.filter(payment_reference=payment_reference).all().first

    def live_for_order(self, order_id) -> list[Payment]:
        payments = self.query.filter(order_id=str(order_id)).limit(None).all().items
        return [p for p in payments if p.is_live]
