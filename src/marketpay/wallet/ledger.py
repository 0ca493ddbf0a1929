"""Ledger posting: the only way money moves in or out of a wallet.

Every function here runs inside the calling command handler's unit of work:
the balance change and its Transaction row commit together or not at all.
"""

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from marketpay.config import commission_rate, default_currency
from marketpay.wallet.transaction import Transaction, TransactionType
from marketpay.wallet.wallet import Wallet

logger = structlog.get_logger(__name__)


def split_commission(amount: float, rate: float | None = None) -> tuple[float, float]:
    """Split an order amount into ``(commission, vendor_amount)``.

    The commission is rounded to two places and the vendor gets the rest,
    so the two always add back up to ``amount``.
    """
    rate = commission_rate() if rate is None else float(rate)
    if not 0 <= rate < 1:
        raise ValidationError({"commission_rate": ["Commission rate must be between 0 and 1"]})
    amount = round(float(amount), 2)
    commission = round(amount * rate, 2)
    return commission, round(amount - commission, 2)


def find_wallet(user_id) -> Wallet | None:
    return current_domain.repository_for(Wallet).find_by_user(user_id)


def wallet_for(user_id) -> Wallet:
    wallet = find_wallet(user_id)
    if wallet is None:
        raise ObjectNotFoundError(f"Wallet for user {user_id} does not exist")
    return wallet


def open_wallet(user_id, currency: str | None = None) -> Wallet:
    """Return the user's wallet, opening an empty one if they have none."""
    wallet = find_wallet(user_id)
    if wallet is None:
        wallet = Wallet.open(user_id=str(user_id), currency=currency or default_currency())
        current_domain.repository_for(Wallet).add(wallet)
        logger.info("Wallet opened", user_id=str(user_id), wallet_id=str(wallet.id))
    return wallet


def post_entry(
    wallet: Wallet,
    transaction_type: TransactionType,
    amount: float,
    reference_id: str | None = None,
    description: str | None = None,
    metadata: dict | None = None,
) -> Transaction:
    """Apply one entry to an already-loaded wallet and append its ledger row.

    The caller persists the wallet once it has posted every entry it needs,
    so several entries against one wallet share a single versioned write.
    """
    balance_before, balance_after = wallet.post(transaction_type, amount)
    transaction = Transaction.record(
        wallet=wallet,
        transaction_type=transaction_type,
        amount=amount,
        balance_before=balance_before,
        balance_after=balance_after,
        reference_id=reference_id,
        description=description,
        metadata=metadata,
    )
    current_domain.repository_for(Transaction).add(transaction)

    logger.info(
        "Ledger entry posted",
        user_id=str(wallet.user_id),
        transaction_type=TransactionType(transaction_type).value,
        amount=transaction.amount,
        balance_before=balance_before,
        balance_after=balance_after,
        reference_id=reference_id,
    )
    return transaction


def credit(
    user_id,
    amount: float,
    reference_id: str | None = None,
    description: str | None = None,
    metadata: dict | None = None,
    transaction_type: TransactionType = TransactionType.CREDIT,
) -> Transaction:
    """Add money to a user's wallet, opening the wallet on first credit."""
    wallet = open_wallet(user_id)
    transaction = post_entry(wallet, transaction_type, amount, reference_id, description, metadata)
    current_domain.repository_for(Wallet).add(wallet)
    return transaction


def debit(
    user_id,
    amount: float,
    reference_id: str | None = None,
    description: str | None = None,
    metadata: dict | None = None,
    transaction_type: TransactionType = TransactionType.DEBIT,
) -> Transaction:
    """Take money out of a user's wallet.

    Raises ``InsufficientFunds`` without touching the wallet when the
    balance does not cover ``amount``.
    """
    wallet = wallet_for(user_id)
    transaction = post_entry(wallet, transaction_type, amount, reference_id, description, metadata)
    current_domain.repository_for(Wallet).add(wallet)
    return transaction
