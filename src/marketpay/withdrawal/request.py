"""Withdrawal requests: OTP issue and the OTP-gated request itself.

GenerateWithdrawalOTP sends the user a six-digit code for a given amount.
RequestWithdrawal accepts that code once, re-checks everything that may
have changed since, and files a PENDING withdrawal for admin review.
Nothing is debited until an admin marks the withdrawal done.
"""

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError, ValidationError
from protean.fields import Float, Identifier, String
from protean.utils.globals import current_domain

from marketpay.actors import Actor
from marketpay.collaborators import get_notifier
from marketpay.collaborators.ports import NotificationKind
from marketpay.config import otp_expiry_minutes, otp_max_attempts, withdrawal_fee
from marketpay.domain import marketpay
from marketpay.wallet.ledger import wallet_for
from marketpay.wallet.wallet import InsufficientFunds, Wallet
from marketpay.withdrawal.otp import OTPCheck, OTPOutcome, OTPRecord
from marketpay.withdrawal.otp_store import get_otp_store
from marketpay.withdrawal.withdrawal import Withdrawal, currency_for_country

logger = structlog.get_logger(__name__)

ACTIVE_WITHDRAWAL_MESSAGE = (
    "You have a pending or processing withdrawal request. Please wait for it to be completed."
)


class OTPVerificationError(InvalidOperationError):
    """The OTP presented with a withdrawal was not accepted. Maps to 403."""

    def __init__(self, message: str, outcome: OTPOutcome = OTPOutcome.INVALID) -> None:
        super().__init__(message)
        self.message = message
        self.outcome = outcome


def _ensure_no_active_withdrawal(user_id) -> None:
    if current_domain.repository_for(Withdrawal).active_for_user(user_id):
        raise ValidationError({"withdrawal": [ACTIVE_WITHDRAWAL_MESSAGE]})


def _ensure_funds(wallet: Wallet, total: float) -> None:
    if not wallet.has_funds(total):
        raise InsufficientFunds(wallet.balance or 0.0, total)


def validate_otp(otp_id: str, code: str, consume: bool = True) -> OTPCheck:
    check = get_otp_store().validate(otp_id, code, otp_max_attempts(), consume=consume)
    if check.outcome in (OTPOutcome.MAX_ATTEMPTS_EXCEEDED, OTPOutcome.EXPIRED):
        logger.warning("Withdrawal OTP rejected", otp_id=otp_id, outcome=check.outcome.value)
    return check


@marketpay.command(part_of="Withdrawal")
class GenerateWithdrawalOTP:
    user_id = Identifier(required=True)
    amount = Float(required=True, min_value=0.01)


@marketpay.command(part_of="Withdrawal")
class RequestWithdrawal:
    user_id = Identifier(required=True)
    otp_id = String(required=True, max_length=64)
    otp_code = String(required=True, max_length=10)
    amount = Float(required=True, min_value=0.01)
    currency = String(required=True, max_length=3)
    country = String(required=True, max_length=2)
    bank_name = String(required=True, max_length=255)
    account_number = String(required=True, max_length=50)
    account_name = String(max_length=255)
    routing_number = String(max_length=50)
    account_type = String(max_length=20)
    recipient_type = String(max_length=20)
    recipient_address = String(max_length=255)
    recipient_city = String(max_length=100)
    recipient_state = String(max_length=100)
    recipient_zip_code = String(max_length=20)
    sort_code = String(max_length=20)


@marketpay.command_handler(part_of=Withdrawal)
class WithdrawalRequestHandler:
    @handle(GenerateWithdrawalOTP)
    def generate_otp(self, command):
        _ensure_no_active_withdrawal(command.user_id)
        wallet = wallet_for(command.user_id)
        _ensure_funds(wallet, round(command.amount + withdrawal_fee(), 2))

        expiry_minutes = otp_expiry_minutes()
        record = OTPRecord.issue(command.user_id, command.amount, expiry_minutes)
        get_otp_store().save(record, ttl_seconds=expiry_minutes * 60)

        # Sent directly: the code must never reach the event store
        get_notifier().notify(
            Actor.user(command.user_id),
            NotificationKind.WITHDRAWAL_OTP,
            {
                "otp_code": record.code,
                "amount": record.amount,
                "currency": wallet.currency,
                "expires_in_minutes": expiry_minutes,
            },
        )
        logger.info("Withdrawal OTP issued", user_id=str(command.user_id), otp_id=record.otp_id)
        return {"otp_id": record.otp_id, "expires_at": record.expires_at}

    @handle(RequestWithdrawal)
    def request_withdrawal(self, command):
        check = validate_otp(command.otp_id, command.otp_code)
        if not check.is_valid:
            raise OTPVerificationError(check.message, check.outcome)

        record = check.record
        if record.user_id != str(command.user_id) or round(record.amount, 2) != round(command.amount, 2):
            logger.warning("OTP presented for a different withdrawal", user_id=str(command.user_id), otp_id=command.otp_id)
            raise OTPVerificationError("OTP was not issued for this withdrawal")

        currency = command.currency.upper()
        if currency != currency_for_country(command.country):
            raise ValidationError(
                {"currency": [f"Currency {currency} is not supported for country {command.country}"]}
            )

        _ensure_no_active_withdrawal(command.user_id)
        wallet = wallet_for(command.user_id)
        fee = withdrawal_fee()
        _ensure_funds(wallet, round(command.amount + fee, 2))

        withdrawal = Withdrawal.request(
            user_id=command.user_id,
            amount=command.amount,
            fee=fee,
            currency=currency,
            country=command.country.upper(),
            bank_name=command.bank_name,
            account_number=command.account_number,
            account_name=command.account_name,
            routing_number=command.routing_number,
            account_type=command.account_type,
            recipient_type=command.recipient_type,
            recipient_address=command.recipient_address,
            recipient_city=command.recipient_city,
            recipient_state=command.recipient_state,
            recipient_zip_code=command.recipient_zip_code,
            sort_code=command.sort_code,
        )
        current_domain.repository_for(Withdrawal).add(withdrawal)

        # Two requests racing for the same user conflict on the wallet version
        wallet.touch()
        current_domain.repository_for(Wallet).add(wallet)

        logger.info(
            "Withdrawal requested",
            withdrawal_id=str(withdrawal.id),
            user_id=str(command.user_id),
            amount=withdrawal.amount,
            fee=withdrawal.fee,
        )
        return withdrawal.to_response()
