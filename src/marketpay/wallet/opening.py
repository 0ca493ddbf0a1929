"""OpenWallet: explicitly open a wallet for a user."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from marketpay.config import default_currency
from marketpay.domain import marketpay
from marketpay.wallet.ledger import find_wallet
from marketpay.wallet.wallet import Wallet


@marketpay.command(part_of="Wallet")
class OpenWallet:
    user_id = Identifier(required=True)
    currency = String(max_length=3)
    daily_limit = Float()
    monthly_limit = Float()


@marketpay.command_handler(part_of=Wallet)
class OpenWalletHandler:
    @handle(OpenWallet)
    def open_wallet(self, command):
        if find_wallet(command.user_id) is not None:
            raise ValidationError({"user_id": ["User already has a wallet"]})

        wallet = Wallet.open(user_id=command.user_id, currency=command.currency or default_currency())
        wallet.daily_limit = command.daily_limit
        wallet.monthly_limit = command.monthly_limit
        current_domain.repository_for(Wallet).add(wallet)
        return str(wallet.id)
