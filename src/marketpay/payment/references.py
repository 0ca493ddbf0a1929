"""Payment references.

Every Payment gets exactly one reference when it is created and keeps it for
life. The prefix tells a webhook which flow a reference belongs to:
``PAY-`` for order payments and ``WF_`` for wallet top-ups.
"""

from uuid import uuid4

ORDER_PREFIX = "PAY-"
WALLET_FUNDING_PREFIX = "WF_"


def new_order_reference() -> str:
    return f"{ORDER_PREFIX}{uuid4().hex}"


def new_funding_reference() -> str:
    return f"{WALLET_FUNDING_PREFIX}{uuid4().hex}"


def is_wallet_funding(reference: str | None) -> bool:
    return bool(reference) and reference.startswith(WALLET_FUNDING_PREFIX)
