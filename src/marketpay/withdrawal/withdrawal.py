"""Withdrawal aggregate (CQRS): a request to pay wallet money out to a bank.

A withdrawal is only ever created after its OTP was verified, and the
wallet is only debited when an admin marks it done. Failed and rejected
withdrawals never move money.

State Machine:
    PENDING → PROCESSING → COMPLETED | FAILED | REJECTED
    PENDING → COMPLETED | FAILED | REJECTED
"""

from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, String, Text

from marketpay.domain import marketpay
from marketpay.withdrawal.events import (
    WithdrawalCompleted,
    WithdrawalFailed,
    WithdrawalProcessing,
    WithdrawalRejected,
    WithdrawalRequested,
)


class WithdrawalStatus(Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REJECTED = "REJECTED"


class Country(Enum):
    NG = "NG"
    US = "US"
    UK = "UK"


class RecipientType(Enum):
    INDIVIDUAL = "INDIVIDUAL"
    CORPORATE = "CORPORATE"


class AccountType(Enum):
    CHECKING = "CHECKING"
    CURRENT = "CURRENT"
    SAVINGS = "SAVINGS"


CURRENCY_FOR_COUNTRY = {
    Country.NG: "NGN",
    Country.US: "USD",
    Country.UK: "GBP",
}

# Destination fields each payout country needs on top of bank and account number
_REQUIRED_DESTINATION_FIELDS = {
    Country.NG: ("account_name",),
    Country.US: (
        "recipient_type",
        "routing_number",
        "account_type",
        "recipient_address",
        "recipient_city",
        "recipient_state",
        "recipient_zip_code",
    ),
    Country.UK: ("recipient_type", "sort_code"),
}

_TERMINAL = {WithdrawalStatus.COMPLETED, WithdrawalStatus.FAILED, WithdrawalStatus.REJECTED}

_VALID_TRANSITIONS = {
    WithdrawalStatus.PENDING: {WithdrawalStatus.PROCESSING} | _TERMINAL,
    WithdrawalStatus.PROCESSING: set(_TERMINAL),
    WithdrawalStatus.COMPLETED: set(),
    WithdrawalStatus.FAILED: set(),
    WithdrawalStatus.REJECTED: set(),
}

ACTIVE_STATUSES = (WithdrawalStatus.PENDING, WithdrawalStatus.PROCESSING)


def currency_for_country(country) -> str:
    try:
        return CURRENCY_FOR_COUNTRY[Country(country)]
    except ValueError:
        raise ValidationError({"country": [f"Unsupported country: {country}"]}) from None


def mask_account_number(account_number: str | None) -> str:
    if not account_number:
        return ""
    return "*" * max(len(account_number) - 4, 0) + account_number[-4:]


@marketpay.aggregate
class Withdrawal:
    user_id = Identifier(required=True)
    amount = Float(required=True)
    fee = Float(default=0.0)
    net_amount = Float()
    currency = String(max_length=3, required=True)
    country = String(choices=Country, required=True)

    # Destination
    bank_name = String(max_length=255, required=True)
    account_number = String(max_length=50, required=True)
    account_name = String(max_length=255)
    routing_number = String(max_length=50)
    account_type = String(choices=AccountType)
    recipient_type = String(choices=RecipientType)
    recipient_address = String(max_length=255)
    recipient_city = String(max_length=100)
    recipient_state = String(max_length=100)
    recipient_zip_code = String(max_length=20)
    sort_code = String(max_length=20)

    status = String(choices=WithdrawalStatus, default=WithdrawalStatus.PENDING.value)
    is_otp_verified = Boolean(default=False)
    admin_notes = Text()
    processed_by = String(max_length=100)
    processed_at = DateTime()
    transaction_reference = String(max_length=255)

    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def amount_must_be_positive(self):
        if self.amount is not None and self.amount <= 0:
            raise ValidationError({"amount": ["Withdrawal amount must be greater than zero"]})

    @invariant.post
    def fee_cannot_be_negative(self):
        if self.fee is not None and self.fee < 0:
            raise ValidationError({"fee": ["Withdrawal fee cannot be negative"]})

    @invariant.post
    def currency_must_match_country(self):
        if self.country and self.currency and self.currency != currency_for_country(self.country):
            raise ValidationError(
                {"currency": [f"Currency {self.currency} is not supported for country {self.country}"]}
            )

    @invariant.post
    def destination_must_be_complete(self):
        if not self.country:
            return
        missing = [name for name in _REQUIRED_DESTINATION_FIELDS[Country(self.country)] if not getattr(self, name)]
        if missing:
            raise ValidationError({name: [f"{name} is required for {self.country} withdrawals"] for name in missing})

    @classmethod
    def request(cls, user_id, amount, fee, currency, country, bank_name, account_number, **destination):
        """Create a PENDING withdrawal whose OTP has already been verified."""
        now = datetime.now(UTC)
        amount = round(float(amount), 2)
        fee = round(float(fee or 0.0), 2)

        withdrawal = cls(
            user_id=user_id,
            amount=amount,
            fee=fee,
            net_amount=round(amount - fee, 2),
            currency=currency.upper(),
            country=Country(country).value,
            bank_name=bank_name,
            account_number=account_number,
            status=WithdrawalStatus.PENDING.value,
            is_otp_verified=True,
            created_at=now,
            updated_at=now,
            **{key: value for key, value in destination.items() if value is not None},
        )
        withdrawal.raise_(
            WithdrawalRequested(
                withdrawal_id=str(withdrawal.id),
                user_id=str(user_id),
                amount=amount,
                fee=fee,
                currency=withdrawal.currency,
                country=withdrawal.country,
                bank_name=bank_name,
                masked_account_number=withdrawal.masked_account_number,
                requested_at=now,
            )
        )
        return withdrawal

    @property
    def masked_account_number(self) -> str:
        return mask_account_number(self.account_number)

    @property
    def total_debit(self) -> float:
        return round(self.amount + (self.fee or 0.0), 2)

    @property
    def is_terminal(self) -> bool:
        return WithdrawalStatus(self.status) in _TERMINAL

    def _assert_can_transition(self, target_status: WithdrawalStatus) -> None:
        if self.is_terminal:
            raise ValidationError({"status": ["Withdrawal is already in final status"]})
        current = WithdrawalStatus(self.status)
        if target_status not in _VALID_TRANSITIONS[current]:
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def _record_decision(self, status: WithdrawalStatus, processed_by, notes=None) -> datetime:
        now = datetime.now(UTC)
        self.status = status.value
        self.processed_by = str(processed_by)
        if notes:
            self.admin_notes = notes
        self.processed_at = now
        self.updated_at = now
        return now

    def start_processing(self, processed_by, notes=None) -> None:
        self._assert_can_transition(WithdrawalStatus.PROCESSING)
        now = self._record_decision(WithdrawalStatus.PROCESSING, processed_by, notes)
        self.raise_(
            WithdrawalProcessing(
                withdrawal_id=str(self.id),
                user_id=str(self.user_id),
                amount=self.amount,
                currency=self.currency,
                processed_by=self.processed_by,
                processing_at=now,
            )
        )

    def complete(self, processed_by, notes=None, transaction_reference=None) -> None:
        """Mark the payout sent. The caller debits the wallet in the same unit of work."""
        self._assert_can_transition(WithdrawalStatus.COMPLETED)
        now = self._record_decision(WithdrawalStatus.COMPLETED, processed_by, notes)
        if transaction_reference:
            self.transaction_reference = transaction_reference
        self.raise_(
            WithdrawalCompleted(
                withdrawal_id=str(self.id),
                user_id=str(self.user_id),
                amount=self.amount,
                fee=self.fee,
                currency=self.currency,
                transaction_reference=self.transaction_reference,
                processed_by=self.processed_by,
                completed_at=now,
            )
        )

    def fail(self, processed_by, notes) -> None:
        if not notes or not notes.strip():
            raise ValidationError({"notes": ["A note is required when marking a withdrawal failed"]})
        self._assert_can_transition(WithdrawalStatus.FAILED)
        now = self._record_decision(WithdrawalStatus.FAILED, processed_by, notes)
        self.raise_(
            WithdrawalFailed(
                withdrawal_id=str(self.id),
                user_id=str(self.user_id),
                amount=self.amount,
                currency=self.currency,
                reason=notes,
                processed_by=self.processed_by,
                failed_at=now,
            )
        )

    def reject(self, processed_by, notes) -> None:
        if not notes or not notes.strip():
            raise ValidationError({"notes": ["A note is required when rejecting a withdrawal"]})
        self._assert_can_transition(WithdrawalStatus.REJECTED)
        now = self._record_decision(WithdrawalStatus.REJECTED, processed_by, notes)
        self.raise_(
            WithdrawalRejected(
                withdrawal_id=str(self.id),
                user_id=str(self.user_id),
                amount=self.amount,
                currency=self.currency,
                reason=notes,
                processed_by=self.processed_by,
                rejected_at=now,
            )
        )

    def to_response(self) -> dict:
        data = self.to_dict()
        data["account_number"] = self.masked_account_number
        return data


@marketpay.repository(part_of=Withdrawal)
class WithdrawalRepository:
    def active_for_user(self, user_id) -> list[Withdrawal]:
        return (
            self.query.filter(user_id=str(user_id), status__in=[s.value for s in ACTIVE_STATUSES])
            .limit(None)
            .all()
            .items
        )

    def for_user(self, user_id) -> list[Withdrawal]:
        return self.query.filter(user_id=str(user_id)).order_by("-created_at").limit(None).all().items

    def by_status(self, status=None) -> list[Withdrawal]:
        query = self.query
        if status:
            query = query.filter(status=WithdrawalStatus(status).value)
        return query.order_by("-created_at").limit(None).all().items
