"""MarketPay bounded context: payment intake, wallet ledger and payouts.

Accepts order payments through interchangeable gateways (internal wallet,
card and bank rails), reconciles gateway webhooks, keeps an append-only
ledger behind every wallet balance, and gates withdrawals behind a one-time
passcode and an admin approval workflow.
"""

import structlog
from protean.domain import Domain

marketpay = Domain(name="marketpay")

logger = structlog.get_logger(__name__)
