"""Domain events for the Wallet and Transaction aggregates."""

from protean.fields import DateTime, Float, Identifier, Integer, String

from marketpay.domain import marketpay


@marketpay.event(part_of="Wallet")
class WalletOpened:
    """A wallet was opened for a user."""

    __version__ = 1

    wallet_id = Identifier(required=True)
    user_id = Identifier(required=True)
    currency = String(required=True)
    opened_at = DateTime(required=True)


@marketpay.event(part_of="Wallet")
class WalletCredited:
    """Money was added to a wallet."""

    __version__ = 1

    wallet_id = Identifier(required=True)
    user_id = Identifier(required=True)
    transaction_type = String(required=True)
    amount = Float(required=True)
    balance_before = Float(required=True)
    balance_after = Float(required=True)
    credited_at = DateTime(required=True)


@marketpay.event(part_of="Wallet")
class WalletDebited:
    """Money was taken out of a wallet."""

    __version__ = 1

    wallet_id = Identifier(required=True)
    user_id = Identifier(required=True)
    transaction_type = String(required=True)
    amount = Float(required=True)
    balance_before = Float(required=True)
    balance_after = Float(required=True)
    debited_at = DateTime(required=True)


@marketpay.event(part_of="Transaction")
class DuplicateCreditsCorrected:
    """Excess duplicate credits were neutralised by a correction debit."""

    __version__ = 1

    user_id = Identifier(required=True)
    correction_transaction_id = Identifier(required=True)
    reference_id = String(required=True)
    duplicate_count = Integer(required=True)
    amount_removed = Float(required=True)
    corrected_at = DateTime(required=True)
