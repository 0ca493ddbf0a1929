"""Read side of the wallet: balances and paginated transaction history."""

from protean.utils.globals import current_domain

from marketpay.wallet.ledger import wallet_for
from marketpay.wallet.transaction import Transaction

MAX_PAGE_SIZE = 100


def get_balance(user_id) -> dict:
    wallet = wallet_for(user_id)
    return {
        "wallet_id": str(wallet.id),
        "user_id": str(wallet.user_id),
        "balance": round(wallet.balance or 0.0, 2),
        "currency": wallet.currency,
        "is_active": wallet.is_active,
        "daily_limit": wallet.daily_limit,
        "monthly_limit": wallet.monthly_limit,
    }


def transaction_history(user_id, transaction_type=None, page: int = 1, page_size: int = 20) -> dict:
    """Ledger rows for a user, newest first, one page at a time."""
    page = max(int(page), 1)
    page_size = min(max(int(page_size), 1), MAX_PAGE_SIZE)

    rows = current_domain.repository_for(Transaction).for_user(user_id, transaction_type=transaction_type)
    start = (page - 1) * page_size
    return {
        "user_id": str(user_id),
        "page": page,
        "page_size": page_size,
        "total": len(rows),
        "transactions": rows[start : start + page_size],
    }
