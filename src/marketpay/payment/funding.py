"""Wallet top-ups.

FundWallet opens a ``WF_`` payment with an external gateway. The money
lands in the wallet when the top-up completes, either through
CompleteWalletFunding (the payer returning from checkout) or through the
gateway's webhook. Both paths credit the wallet exactly once.
"""

import json

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from marketpay.config import default_currency
from marketpay.domain import marketpay
from marketpay.gateway import get_gateway
from marketpay.gateway.methods import PaymentMethod, parse_method
from marketpay.payment.lookup import get_payment_by_reference
from marketpay.payment.payment import Payment, PaymentPurpose
from marketpay.payment.references import is_wallet_funding
from marketpay.payment.settlement import settle

logger = structlog.get_logger(__name__)


@marketpay.command(part_of="Payment")
class FundWallet:
    user_id = Identifier(required=True)
    amount = Float(required=True, min_value=0.01)
    currency = String(max_length=3)
    payment_method = String(required=True, max_length=30)
    payer_email = String(max_length=254)


@marketpay.command(part_of="Payment")
class CompleteWalletFunding:
    payment_reference = String(required=True, max_length=64)
    external_reference = String(max_length=255)
    gateway_response = Text()  # JSON


@marketpay.command_handler(part_of=Payment)
class WalletFundingHandler:
    @handle(FundWallet)
    def fund_wallet(self, command):
        try:
            method = parse_method(command.payment_method)
        except ValueError as exc:
            raise ValidationError({"payment_method": [str(exc)]}) from exc
        if method == PaymentMethod.WALLET:
            raise ValidationError({"payment_method": ["A wallet cannot be funded from itself"]})

        payment = Payment.initiate(
            user_id=command.user_id,
            payment_method=method,
            amount=command.amount,
            currency=command.currency or default_currency(),
            purpose=PaymentPurpose.WALLET_FUNDING,
        )
        gateway = get_gateway(method)
        result = gateway.initialize_payment(
            amount=payment.amount,
            currency=payment.currency,
            reference=payment.payment_reference,
            payer_email=command.payer_email,
            metadata={"user_id": str(command.user_id), "purpose": PaymentPurpose.WALLET_FUNDING.value},
        )

        if result.success:
            payment.mark_processing(
                external_reference=result.external_reference,
                redirect_url=result.redirect_url,
                gateway_response=result.raw_response,
            )
        else:
            logger.warning(
                "Gateway refused wallet funding",
                payment_reference=payment.payment_reference,
                gateway=gateway.name,
                error=result.error,
            )
            payment.fail(result.error or "Payment initialization failed", gateway_response=result.raw_response)

        current_domain.repository_for(Payment).add(payment)
        return payment.summary()

    @handle(CompleteWalletFunding)
    def complete_wallet_funding(self, command):
        if not is_wallet_funding(command.payment_reference):
            raise ValidationError({"payment_reference": ["Not a wallet funding reference"]})

        payment = get_payment_by_reference(command.payment_reference)
        if not payment.is_wallet_funding:
            raise ValidationError({"payment_reference": ["Not a wallet funding reference"]})
        if payment.is_finished:
            return payment.summary()

        gateway_response = json.loads(command.gateway_response) if command.gateway_response else None
        settle(payment, external_reference=command.external_reference, gateway_response=gateway_response)
        return payment.summary()
