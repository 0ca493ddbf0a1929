"""Transaction aggregate: the append-only ledger behind every wallet balance.

A Transaction row is written once, next to the balance change it explains,
and its amounts are never edited afterwards. The only later change a row
ever sees is being flagged ``REVERSED`` when a correction neutralises it.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String, Text

from marketpay.domain import marketpay


class TransactionType(Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"
    COMMISSION = "COMMISSION"
    PAYOUT = "PAYOUT"
    REFUND = "REFUND"
    REVERSAL = "REVERSAL"
    FEE = "FEE"


class TransactionStatus(Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REVERSED = "REVERSED"


CREDIT_TYPES = frozenset({TransactionType.CREDIT, TransactionType.REFUND})


def is_credit(transaction_type: TransactionType) -> bool:
    return TransactionType(transaction_type) in CREDIT_TYPES


@marketpay.aggregate(schema_name="wallet_transaction")
class Transaction:
    wallet_id = Identifier(required=True)
    user_id = Identifier(required=True)
    transaction_type = String(choices=TransactionType, required=True)
    amount = Float(required=True)
    balance_before = Float(required=True)
    balance_after = Float(required=True)
    reference_id = String(max_length=255)
    status = String(choices=TransactionStatus, default=TransactionStatus.COMPLETED.value)
    description = String(max_length=500)
    metadata_json = Text()  # JSON object; "metadata" is reserved on SQLAlchemy models
    reversed_at = DateTime()
    reversal_reason = String(max_length=500)
    created_at = DateTime()

    @invariant.post
    def amount_must_be_positive(self):
        if self.amount is not None and self.amount <= 0:
            raise ValidationError({"amount": ["Transaction amount must be greater than zero"]})

    @invariant.post
    def balances_must_agree_with_amount(self):
        if self.amount is None or self.balance_before is None or self.balance_after is None:
            return
        sign = 1 if is_credit(self.transaction_type) else -1
        if round(self.balance_before + sign * self.amount, 2) != round(self.balance_after, 2):
            raise ValidationError({"balance_after": ["Balance after does not match balance before and amount"]})

    @classmethod
    def record(
        cls,
        wallet,
        transaction_type,
        amount,
        balance_before,
        balance_after,
        reference_id=None,
        description=None,
        metadata=None,
    ):
        return cls(
            wallet_id=str(wallet.id),
            user_id=str(wallet.user_id),
            transaction_type=TransactionType(transaction_type).value,
            amount=round(float(amount), 2),
            balance_before=balance_before,
            balance_after=balance_after,
            reference_id=reference_id,
            status=TransactionStatus.COMPLETED.value,
            description=description,
            metadata_json=json.dumps(metadata or {}),
            created_at=datetime.now(UTC),
        )

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata_json) if self.metadata_json else {}

    def to_response(self) -> dict:
        data = self.to_dict()
        data.pop("metadata_json", None)
        data["metadata"] = self.metadata_dict
        return data

    def mark_reversed(self, reason: str, extra_metadata: dict | None = None) -> None:
        """Flag this row as neutralised by a correction entry."""
        if self.status == TransactionStatus.REVERSED.value:
            raise ValidationError({"status": ["Transaction is already reversed"]})

        metadata = self.metadata_dict
        metadata.update(extra_metadata or {})
        metadata["correction_applied"] = True

        self.status = TransactionStatus.REVERSED.value
        self.reversed_at = datetime.now(UTC)
        self.reversal_reason = reason
        self.metadata_json = json.dumps(metadata)


@marketpay.repository(part_of=Transaction)
class TransactionRepository:
    def for_user(self, user_id, transaction_type=None, status=None) -> list[Transaction]:
        """Ledger rows for one user, newest first."""
        filters = {"user_id": str(user_id)}
        if transaction_type:
            filters["transaction_type"] = TransactionType(transaction_type).value
        if status:
            filters["status"] = TransactionStatus(status).value
        return self.query.filter(**filters).order_by("-created_at").limit(None).all().items

    def for_reference(self, user_id, reference_id) -> list[Transaction]:
        return (
            self.query.filter(user_id=str(user_id), reference_id=str(reference_id))
            .order_by("created_at")
            .limit(None)
            .all()
            .items
        )
