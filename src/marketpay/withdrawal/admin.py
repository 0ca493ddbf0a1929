"""Admin review of withdrawals.

Admins move a withdrawal through PROCESSING to one of three final states.
Only ``done`` moves money: the amount is posted as a PAYOUT and the fee as
a FEE entry, together with the status change, in one unit of work.
"""

from collections import Counter, defaultdict

import structlog
from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from marketpay.actors import Actor
from marketpay.domain import marketpay
from marketpay.wallet.ledger import post_entry, wallet_for
from marketpay.wallet.transaction import TransactionType
from marketpay.wallet.wallet import InsufficientFunds, Wallet
from marketpay.withdrawal.withdrawal import Withdrawal, WithdrawalStatus

logger = structlog.get_logger(__name__)


@marketpay.command(part_of="Withdrawal")
class MarkWithdrawalProcessing:
    withdrawal_id = Identifier(required=True)
    admin_id = Identifier(required=True)
    notes = Text()


@marketpay.command(part_of="Withdrawal")
class MarkWithdrawalDone:
    withdrawal_id = Identifier(required=True)
    admin_id = Identifier(required=True)
    notes = Text()
    transaction_reference = String(max_length=255)


@marketpay.command(part_of="Withdrawal")
class MarkWithdrawalFailed:
    withdrawal_id = Identifier(required=True)
    admin_id = Identifier(required=True)
    notes = Text(required=True)


@marketpay.command(part_of="Withdrawal")
class MarkWithdrawalRejected:
    withdrawal_id = Identifier(required=True)
    admin_id = Identifier(required=True)
    notes = Text(required=True)


@marketpay.command_handler(part_of=Withdrawal)
class WithdrawalAdminHandler:
    @handle(MarkWithdrawalProcessing)
    def mark_processing(self, command):
        repo = current_domain.repository_for(Withdrawal)
        withdrawal = repo.get(command.withdrawal_id)
        withdrawal.start_processing(Actor.admin(command.admin_id), command.notes)
        repo.add(withdrawal)
        return withdrawal.to_response()

    @handle(MarkWithdrawalDone)
    def mark_done(self, command):
        repo = current_domain.repository_for(Withdrawal)
        withdrawal = repo.get(command.withdrawal_id)
        withdrawal.complete(
            Actor.admin(command.admin_id),
            notes=command.notes,
            transaction_reference=command.transaction_reference,
        )

        wallet = wallet_for(withdrawal.user_id)
        if not wallet.has_funds(withdrawal.total_debit):
            raise InsufficientFunds(wallet.balance or 0.0, withdrawal.total_debit)

        entry_metadata = {"withdrawal_id": str(withdrawal.id), "processed_by": withdrawal.processed_by}
        post_entry(
            wallet,
            TransactionType.PAYOUT,
            withdrawal.amount,
            reference_id=str(withdrawal.id),
            description=f"Withdrawal to {withdrawal.bank_name} {withdrawal.masked_account_number}",
            metadata={**entry_metadata, "transaction_reference": withdrawal.transaction_reference},
        )
        if withdrawal.fee:
            post_entry(
                wallet,
                TransactionType.FEE,
                withdrawal.fee,
                reference_id=str(withdrawal.id),
                description="Withdrawal fee",
                metadata=entry_metadata,
            )
        current_domain.repository_for(Wallet).add(wallet)
        repo.add(withdrawal)

        logger.info(
            "Withdrawal completed",
            withdrawal_id=str(withdrawal.id),
            user_id=str(withdrawal.user_id),
            amount=withdrawal.amount,
            fee=withdrawal.fee,
            balance_after=wallet.balance,
        )
        return withdrawal.to_response()

    @handle(MarkWithdrawalFailed)
    def mark_failed(self, command):
        repo = current_domain.repository_for(Withdrawal)
        withdrawal = repo.get(command.withdrawal_id)
        withdrawal.fail(Actor.admin(command.admin_id), command.notes)
        repo.add(withdrawal)
        logger.info("Withdrawal failed", withdrawal_id=str(withdrawal.id), reason=command.notes)
        return withdrawal.to_response()

    @handle(MarkWithdrawalRejected)
    def mark_rejected(self, command):
        repo = current_domain.repository_for(Withdrawal)
        withdrawal = repo.get(command.withdrawal_id)
        withdrawal.reject(Actor.admin(command.admin_id), command.notes)
        repo.add(withdrawal)
        logger.info("Withdrawal rejected", withdrawal_id=str(withdrawal.id), reason=command.notes)
        return withdrawal.to_response()


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------
def get_withdrawal(withdrawal_id) -> Withdrawal:
    return current_domain.repository_for(Withdrawal).get(withdrawal_id)


def withdrawal_history(user_id) -> list[Withdrawal]:
    return current_domain.repository_for(Withdrawal).for_user(user_id)


def list_withdrawals(status=None) -> list[Withdrawal]:
    return current_domain.repository_for(Withdrawal).by_status(status)


def withdrawal_stats() -> dict:
    """Request counts and amount totals per status."""
    withdrawals = current_domain.repository_for(Withdrawal).by_status()
    counts = Counter(w.status for w in withdrawals)
    totals = defaultdict(float)
    for w in withdrawals:
        totals[w.status] += w.amount

    stats = {"total_requests": len(withdrawals)}
    for status in WithdrawalStatus:
        key = status.value.lower()
        stats[f"{key}_count"] = counts.get(status.value, 0)
        stats[f"{key}_amount"] = round(totals.get(status.value, 0.0), 2)
    return stats
