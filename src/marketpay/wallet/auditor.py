"""Duplicate-credit auditor.

A gateway that delivers the same success callback twice, or an operator who
replays one, can leave a wallet credited more than once for a single
payment. The auditor finds those clusters (same reference, same amount),
shows what a correction would do, and applies it.

The ledger is append-only, so a correction never deletes or edits amounts:
it posts one DEBIT per cluster for the excess and flags the excess credit
rows ``REVERSED``. A corrected wallet reports no clusters, so running the
correction again changes nothing.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime

import structlog
from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from marketpay.actors import AUDITOR
from marketpay.domain import marketpay
from marketpay.wallet.events import DuplicateCreditsCorrected
from marketpay.wallet.ledger import post_entry, wallet_for
from marketpay.wallet.transaction import Transaction, TransactionStatus, TransactionType
from marketpay.wallet.wallet import Wallet

logger = structlog.get_logger(__name__)

REVERSAL_REASON = "Duplicate credit detected and corrected"
CORRECTION_TYPE = "duplicate_credit_removal"


@dataclass
class DuplicateCluster:
    """Credits sharing one reference and amount, oldest first."""

    reference_id: str
    amount: float
    transactions: list = field(default_factory=list)

    @property
    def kept(self) -> Transaction:
        return self.transactions[0]

    @property
    def excess(self) -> list:
        return self.transactions[1:]

    @property
    def removable_amount(self) -> float:
        return round(self.amount * len(self.excess), 2)

    def to_dict(self) -> dict:
        return {
            "reference_id": self.reference_id,
            "amount": self.amount,
            "count": len(self.transactions),
            "kept_transaction_id": str(self.kept.id),
            "removable_transaction_ids": [str(t.id) for t in self.excess],
            "removable_count": len(self.excess),
            "removable_amount": self.removable_amount,
        }


def find_duplicate_credits(user_id) -> list[DuplicateCluster]:
    """Completed CREDIT rows grouped by ``(reference_id, amount)``, clusters of two or more."""
    credits = current_domain.repository_for(Transaction).for_user(
        user_id,
        transaction_type=TransactionType.CREDIT,
        status=TransactionStatus.COMPLETED,
    )

    groups = defaultdict(list)
    for credit in credits:
        if credit.reference_id:
            groups[(credit.reference_id, round(credit.amount, 2))].append(credit)

    clusters = []
    for (reference_id, amount), rows in groups.items():
        if len(rows) > 1:
            rows.sort(key=lambda t: t.created_at)
            clusters.append(DuplicateCluster(reference_id=reference_id, amount=amount, transactions=rows))
    clusters.sort(key=lambda c: c.kept.created_at)
    return clusters


def preview_correction(user_id) -> dict:
    """What ``CorrectDuplicateCredits`` would do, without doing it."""
    wallet = wallet_for(user_id)
    clusters = find_duplicate_credits(user_id)

    total_removable = round(sum(c.removable_amount for c in clusters), 2)
    current_balance = round(wallet.balance or 0.0, 2)
    balance_after_fix = round(current_balance - total_removable, 2)

    preview = {
        "user_id": str(user_id),
        "clusters": [c.to_dict() for c in clusters],
        "duplicate_groups": len(clusters),
        "transactions_to_remove": sum(len(c.excess) for c in clusters),
        "total_amount_to_remove": total_removable,
        "current_balance": current_balance,
        "balance_after_fix": balance_after_fix,
        "warning": None,
    }
    if balance_after_fix < 0:
        preview["warning"] = (
            f"Balance would become negative ({balance_after_fix:.2f}); "
            "the user has already spent part of the duplicated funds"
        )
    return preview


def verify_reference(user_id, reference_id: str) -> dict:
    """Every credit posted to a user's wallet for one reference."""
    rows = [
        t
        for t in current_domain.repository_for(Transaction).for_reference(user_id, reference_id)
        if t.transaction_type == TransactionType.CREDIT.value
    ]
    active = [t for t in rows if t.status == TransactionStatus.COMPLETED.value]
    return {
        "user_id": str(user_id),
        "reference_id": reference_id,
        "credit_count": len(rows),
        "active_credit_count": len(active),
        "total_credited": round(sum(t.amount for t in active), 2),
        "is_duplicated": len(active) > 1,
        "transactions": rows,
    }


@marketpay.command(part_of="Transaction")
class CorrectDuplicateCredits:
    user_id = Identifier(required=True)


@marketpay.command_handler(part_of=Transaction)
class DuplicateCreditCorrectionHandler:
    @handle(CorrectDuplicateCredits)
    def correct_duplicate_credits(self, command):
        clusters = find_duplicate_credits(command.user_id)
        if not clusters:
            return {"user_id": str(command.user_id), "corrections": [], "total_amount_removed": 0.0}

        wallet = wallet_for(command.user_id)
        txn_repo = current_domain.repository_for(Transaction)
        now = datetime.now(UTC)
        reference = f"CORRECTION_{int(now.timestamp() * 1000)}"

        corrections = []
        for cluster in clusters:
            removed_ids = [str(t.id) for t in cluster.excess]
            correction = post_entry(
                wallet,
                TransactionType.DEBIT,
                cluster.removable_amount,
                reference_id=reference,
                description=f"Duplicate credit correction for {cluster.reference_id}",
                metadata={
                    "correction_type": CORRECTION_TYPE,
                    "original_reference": cluster.reference_id,
                    "duplicate_count": len(cluster.transactions),
                    "transactions_removed": removed_ids,
                    "performed_by": str(AUDITOR),
                },
            )

            for row in cluster.excess:
                row.mark_reversed(REVERSAL_REASON, {"correction_transaction_id": str(correction.id)})
                txn_repo.add(row)

            correction.raise_(
                DuplicateCreditsCorrected(
                    user_id=str(command.user_id),
                    correction_transaction_id=str(correction.id),
                    reference_id=cluster.reference_id,
                    duplicate_count=len(cluster.transactions),
                    amount_removed=cluster.removable_amount,
                    corrected_at=now,
                )
            )
            txn_repo.add(correction)

            corrections.append(
                {
                    "reference_id": cluster.reference_id,
                    "correction_transaction_id": str(correction.id),
                    "transactions_removed": removed_ids,
                    "amount_removed": cluster.removable_amount,
                }
            )

        current_domain.repository_for(Wallet).add(wallet)

        logger.warning(
            "Duplicate credits corrected",
            user_id=str(command.user_id),
            clusters=len(corrections),
            balance_after=wallet.balance,
        )
        return {
            "user_id": str(command.user_id),
            "correction_reference": reference,
            "corrections": corrections,
            "total_amount_removed": round(sum(c["amount_removed"] for c in corrections), 2),
            "balance_after": round(wallet.balance, 2),
        }
