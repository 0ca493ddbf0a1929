"""Domain events for the Withdrawal aggregate."""

from protean.fields import DateTime, Float, Identifier, String, Text

from marketpay.domain import marketpay


@marketpay.event(part_of="Withdrawal")
class WithdrawalRequested:
    """A user asked for money to be paid out to their bank account."""

    __version__ = 1

    withdrawal_id = Identifier(required=True)
    user_id = Identifier(required=True)
    amount = Float(required=True)
    fee = Float(required=True)
    currency = String(required=True)
    country = String(required=True)
    bank_name = String(required=True)
    masked_account_number = String(required=True)
    requested_at = DateTime(required=True)


@marketpay.event(part_of="Withdrawal")
class WithdrawalProcessing:
    """An admin started working on the payout."""

    __version__ = 1

    withdrawal_id = Identifier(required=True)
    user_id = Identifier(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    processed_by = String(required=True)
    processing_at = DateTime(required=True)


@marketpay.event(part_of="Withdrawal")
class WithdrawalCompleted:
    """The payout was sent and the wallet debited."""

    __version__ = 1

    withdrawal_id = Identifier(required=True)
    user_id = Identifier(required=True)
    amount = Float(required=True)
    fee = Float(required=True)
    currency = String(required=True)
    transaction_reference = String()
    processed_by = String(required=True)
    completed_at = DateTime(required=True)


@marketpay.event(part_of="Withdrawal")
class WithdrawalFailed:
    """The payout could not be sent. The wallet was not touched."""

    __version__ = 1

    withdrawal_id = Identifier(required=True)
    user_id = Identifier(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    reason = Text(required=True)
    processed_by = String(required=True)
    failed_at = DateTime(required=True)


@marketpay.event(part_of="Withdrawal")
class WithdrawalRejected:
    """An admin refused the withdrawal. The wallet was not touched."""

    __version__ = 1

    withdrawal_id = Identifier(required=True)
    user_id = Identifier(required=True)
    amount = Float(required=True)
    currency = String(required=True)
    reason = Text(required=True)
    processed_by = String(required=True)
    rejected_at = DateTime(required=True)
