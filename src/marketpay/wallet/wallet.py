"""Wallet aggregate (CQRS): one spendable balance per user.

The balance only ever moves through ``post()``, which every ledger entry
goes through, so each balance change has exactly one Transaction behind it.

Concurrency: the Wallet is the optimistic-concurrency boundary. Two
handlers that read the same balance cannot both commit; the loser raises
``ExpectedVersionError`` and Protean re-runs its handler on fresh state.
"""

from datetime import UTC, datetime

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, String

from marketpay.domain import marketpay
from marketpay.wallet.events import WalletCredited, WalletDebited, WalletOpened
from marketpay.wallet.transaction import TransactionType, is_credit


class InsufficientFunds(ValidationError):
    """Raised when a debit would take a balance below zero."""

    def __init__(self, balance: float, amount: float) -> None:
        self.balance = balance
        self.amount = amount
        super().__init__({"balance": [f"Insufficient balance: {balance:.2f} available, {amount:.2f} required"]})


@marketpay.aggregate
class Wallet:
    user_id = Identifier(required=True, unique=True)
    balance = Float(default=0.0)
    currency = String(max_length=3, required=True)
    daily_limit = Float()
    monthly_limit = Float()
    is_active = Boolean(default=True)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def balance_cannot_be_negative(self):
        if self.balance is not None and self.balance < 0:
            raise ValidationError({"balance": ["Wallet balance cannot be negative"]})

    @classmethod
    def open(cls, user_id, currency):
        now = datetime.now(UTC)
        wallet = cls(
            user_id=user_id,
            balance=0.0,
            currency=currency.upper(),
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        wallet.raise_(
            WalletOpened(
                wallet_id=str(wallet.id),
                user_id=str(user_id),
                currency=wallet.currency,
                opened_at=now,
            )
        )
        return wallet

    def post(self, transaction_type: TransactionType, amount: float) -> tuple[float, float]:
        """Apply one ledger entry and return ``(balance_before, balance_after)``.

        Credit-side types add to the balance, debit-side types subtract.
        A debit larger than the balance raises ``InsufficientFunds`` and
        leaves the wallet untouched.
        """
        amount = round(float(amount), 2)
        if amount <= 0:
            raise ValidationError({"amount": ["Amount must be greater than zero"]})
        if not self.is_active:
            raise ValidationError({"wallet": ["Wallet is not active"]})

        transaction_type = TransactionType(transaction_type)
        before = round(self.balance or 0.0, 2)
        now = datetime.now(UTC)

        if is_credit(transaction_type):
            after = round(before + amount, 2)
            event = WalletCredited(
                wallet_id=str(self.id),
                user_id=str(self.user_id),
                transaction_type=transaction_type.value,
                amount=amount,
                balance_before=before,
                balance_after=after,
                credited_at=now,
            )
        else:
            if before < amount:
                raise InsufficientFunds(before, amount)
            after = round(before - amount, 2)
            event = WalletDebited(
                wallet_id=str(self.id),
                user_id=str(self.user_id),
                transaction_type=transaction_type.value,
                amount=amount,
                balance_before=before,
                balance_after=after,
                debited_at=now,
            )

        self.balance = after
        self.updated_at = now
        self.raise_(event)
        return before, after

    def touch(self) -> None:
        """Advance the version so concurrent handlers working on this wallet conflict."""
        self.updated_at = datetime.now(UTC)

    def has_funds(self, amount: float) -> bool:
        return round(self.balance or 0.0, 2) >= round(float(amount), 2)


@marketpay.repository(part_of=Wallet)
class WalletRepository:
    def find_by_user(self, user_id) -> Wallet | None:
        return self.query.filter(user_id=str(user_id)).all().first
