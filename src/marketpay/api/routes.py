"""FastAPI routes for MarketPay: payments, webhooks, wallets, withdrawals, banks."""

import json
import os

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from protean.utils.globals import current_domain

from marketpay.api.schemas import (
    AddBankRequest,
    AdminDecisionRequest,
    BankResponse,
    CompleteFundingRequest,
    ConfigureGatewayRequest,
    CorrectionPreviewResponse,
    DuplicatesResponse,
    FundWalletRequest,
    GatewayConfigResponse,
    GenerateOTPRequest,
    OpenWalletRequest,
    OTPCheckResponse,
    OTPIssuedResponse,
    PaymentResponse,
    ProcessPaymentRequest,
    ReferenceCheckResponse,
    RefundPaymentRequest,
    TransactionPageResponse,
    UpdateBankRequest,
    ValidateOTPRequest,
    WalletIdResponse,
    WalletResponse,
    WebhookAck,
    WithdrawalRequest,
    WithdrawalResponse,
    WithdrawalStatsResponse,
)
from marketpay.bank.bank import AddBank, RemoveBank, UpdateBank, list_banks
from marketpay.gateway import get_gateway, set_gateway
from marketpay.gateway.fake_adapter import FakeGateway
from marketpay.gateway.methods import PaymentProvider, parse_method, parse_provider
from marketpay.gateway.port import GatewayError
from marketpay.payment.funding import CompleteWalletFunding, FundWallet
from marketpay.payment.lookup import get_payment, get_payment_by_reference
from marketpay.payment.payment import PaymentStatus
from marketpay.payment.processing import ProcessPayment
from marketpay.payment.reconciliation import WebhookReconciler
from marketpay.payment.refund import RefundPayment
from marketpay.payment.verification import VerifyPayment
from marketpay.wallet.auditor import (
    CorrectDuplicateCredits,
    find_duplicate_credits,
    preview_correction,
    verify_reference,
)
from marketpay.wallet.history import get_balance, transaction_history
from marketpay.wallet.opening import OpenWallet
from marketpay.withdrawal.admin import (
    MarkWithdrawalDone,
    MarkWithdrawalFailed,
    MarkWithdrawalProcessing,
    MarkWithdrawalRejected,
    get_withdrawal,
    list_withdrawals,
    withdrawal_history,
    withdrawal_stats,
)
from marketpay.withdrawal.request import (
    GenerateWithdrawalOTP,
    OTPVerificationError,
    RequestWithdrawal,
    validate_otp,
)


def _surface_gateway_failure(summary: dict) -> dict:
    """Raise once a FAILED payment has been committed, so the client sees 502."""
    if summary["status"] == PaymentStatus.FAILED.value:
        raise GatewayError(summary.get("failure_reason") or "Payment gateway error", summary["payment_reference"])
    return summary


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("", status_code=201, response_model=PaymentResponse)
async def process_payment(body: ProcessPaymentRequest) -> PaymentResponse:
    """Take payment for an order through the chosen method."""
    command = ProcessPayment(
        order_id=body.order_id,
        payment_method=body.payment_method,
        payer_email=body.payer_email,
        metadata=json.dumps(body.metadata),
    )
    summary = current_domain.process(command, asynchronous=False)
    return PaymentResponse(**_surface_gateway_failure(summary))


@payment_router.post("/gateway/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behind a payment method (non-production only).

    Installs a FakeGateway for the method if a real adapter is in place,
    so card and bank flows can be exercised without credentials.
    """
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    method = parse_method(body.payment_method)
    gateway = get_gateway(method)
    if not isinstance(gateway, FakeGateway):
        gateway = FakeGateway()
        set_gateway(method, gateway)

    gateway.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
        verify_status=body.verify_status,
    )
    return GatewayConfigResponse(
        payment_method=method.value,
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
        verify_status=gateway.verify_status.value,
    )


@payment_router.get("/reference/{payment_reference}", response_model=PaymentResponse)
async def get_payment_by_ref(payment_reference: str) -> PaymentResponse:
    return PaymentResponse(**get_payment_by_reference(payment_reference).summary())


@payment_router.post("/verify/{payment_reference}", response_model=PaymentResponse)
async def verify_payment(payment_reference: str) -> PaymentResponse:
    """Ask the gateway for the payment's status and apply it."""
    command = VerifyPayment(payment_reference=payment_reference)
    summary = current_domain.process(command, asynchronous=False)
    return PaymentResponse(**summary)


@payment_router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment_by_id(payment_id: str) -> PaymentResponse:
    return PaymentResponse(**get_payment(payment_id).summary())


@payment_router.post("/{payment_id}/refund", response_model=PaymentResponse)
async def refund_payment(payment_id: str, body: RefundPaymentRequest) -> PaymentResponse:
    """Refund part or all of a completed payment."""
    command = RefundPayment(payment_id=payment_id, amount=body.amount, reason=body.reason)
    summary = current_domain.process(command, asynchronous=False)
    return PaymentResponse(**summary)


# ---------------------------------------------------------------------------
# Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])

_SIGNATURE_HEADERS = {
    PaymentProvider.CARD_A: "x-paystack-signature",
    PaymentProvider.CARD_B: "stripe-signature",
    PaymentProvider.BANK: "x-mercury-signature",
}
_DEFAULT_SIGNATURE_HEADER = "x-webhook-signature"

_reconciler = WebhookReconciler()


async def _reconcile(provider: PaymentProvider, request: Request) -> JSONResponse:
    payload = await request.body()
    header = _SIGNATURE_HEADERS.get(provider, _DEFAULT_SIGNATURE_HEADER)
    signature = request.headers.get(header) or request.headers.get(_DEFAULT_SIGNATURE_HEADER)
    outcome = _reconciler.reconcile(provider, payload, signature)
    return JSONResponse(status_code=outcome.http_status, content=outcome.body())


@webhook_router.post("/card-a", response_model=WebhookAck)
async def card_a_webhook(request: Request) -> JSONResponse:
    return await _reconcile(PaymentProvider.CARD_A, request)


@webhook_router.post("/card-b", response_model=WebhookAck)
async def card_b_webhook(request: Request) -> JSONResponse:
    return await _reconcile(PaymentProvider.CARD_B, request)


@webhook_router.post("/bank", response_model=WebhookAck)
async def bank_webhook(request: Request) -> JSONResponse:
    return await _reconcile(PaymentProvider.BANK, request)


@webhook_router.post("/{provider}", response_model=WebhookAck)
async def provider_webhook(provider: str, request: Request) -> JSONResponse:
    """Generic entry point; the path segment names the provider."""
    try:
        resolved = parse_provider(provider)
    except ValueError:
        return JSONResponse(status_code=404, content={"status": "not_found"})
    return await _reconcile(resolved, request)


# ---------------------------------------------------------------------------
# Wallet Router
# ---------------------------------------------------------------------------
wallet_router = APIRouter(prefix="/wallet", tags=["wallet"])


@wallet_router.post("", status_code=201, response_model=WalletIdResponse)
async def open_wallet(body: OpenWalletRequest) -> WalletIdResponse:
    command = OpenWallet(
        user_id=body.user_id,
        currency=body.currency,
        daily_limit=body.daily_limit,
        monthly_limit=body.monthly_limit,
    )
    wallet_id = current_domain.process(command, asynchronous=False)
    return WalletIdResponse(wallet_id=wallet_id)


@wallet_router.post("/fund", status_code=201, response_model=PaymentResponse)
async def fund_wallet(body: FundWalletRequest) -> PaymentResponse:
    """Top up a wallet through a card or bank gateway."""
    command = FundWallet(
        user_id=body.user_id,
        amount=body.amount,
        currency=body.currency,
        payment_method=body.payment_method,
        payer_email=body.payer_email,
    )
    summary = current_domain.process(command, asynchronous=False)
    return PaymentResponse(**_surface_gateway_failure(summary))


@wallet_router.post("/funding/{payment_reference}/complete", response_model=PaymentResponse)
async def complete_wallet_funding(payment_reference: str, body: CompleteFundingRequest) -> PaymentResponse:
    """Credit the wallet once the payer returns from checkout."""
    command = CompleteWalletFunding(
        payment_reference=payment_reference,
        external_reference=body.external_reference,
        gateway_response=json.dumps(body.gateway_response) if body.gateway_response is not None else None,
    )
    summary = current_domain.process(command, asynchronous=False)
    return PaymentResponse(**summary)


@wallet_router.get("/{user_id}", response_model=WalletResponse)
async def wallet_balance(user_id: str) -> WalletResponse:
    return WalletResponse(**get_balance(user_id))


@wallet_router.get("/{user_id}/transactions", response_model=TransactionPageResponse)
async def wallet_transactions(
    user_id: str,
    transaction_type: str | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
) -> TransactionPageResponse:
    history = transaction_history(user_id, transaction_type=transaction_type, page=page, page_size=page_size)
    history["transactions"] = [t.to_response() for t in history["transactions"]]
    return TransactionPageResponse(**history)


# ---------------------------------------------------------------------------
# Withdrawal Router
# ---------------------------------------------------------------------------
withdrawal_router = APIRouter(prefix="/withdrawals", tags=["withdrawals"])


@withdrawal_router.post("/otp", status_code=201, response_model=OTPIssuedResponse)
async def generate_withdrawal_otp(body: GenerateOTPRequest) -> OTPIssuedResponse:
    """Send the user a one-time code for a withdrawal of ``amount``."""
    command = GenerateWithdrawalOTP(user_id=body.user_id, amount=body.amount)
    result = current_domain.process(command, asynchronous=False)
    return OTPIssuedResponse(**result)


@withdrawal_router.post("/otp/validate", response_model=OTPCheckResponse)
async def check_withdrawal_otp(body: ValidateOTPRequest) -> OTPCheckResponse:
    """Check a code without using it up. Wrong guesses still count."""
    check = validate_otp(body.otp_id, body.otp_code, consume=False)
    if not check.is_valid:
        raise OTPVerificationError(check.message, check.outcome)
    return OTPCheckResponse(valid=True, outcome=check.outcome.value, message="OTP is valid")


@withdrawal_router.post("", status_code=201, response_model=WithdrawalResponse)
async def request_withdrawal(body: WithdrawalRequest) -> WithdrawalResponse:
    command = RequestWithdrawal(**body.model_dump())
    result = current_domain.process(command, asynchronous=False)
    return WithdrawalResponse(**result)


@withdrawal_router.get("/user/{user_id}", response_model=list[WithdrawalResponse])
async def user_withdrawals(user_id: str) -> list[WithdrawalResponse]:
    return [WithdrawalResponse(**w.to_response()) for w in withdrawal_history(user_id)]


@withdrawal_router.get("/{withdrawal_id}", response_model=WithdrawalResponse)
async def withdrawal_detail(withdrawal_id: str) -> WithdrawalResponse:
    return WithdrawalResponse(**get_withdrawal(withdrawal_id).to_response())


# ---------------------------------------------------------------------------
# Admin Router
# ---------------------------------------------------------------------------
admin_router = APIRouter(prefix="/admin", tags=["admin"])

_DECISIONS = {
    "processing": MarkWithdrawalProcessing,
    "done": MarkWithdrawalDone,
    "failed": MarkWithdrawalFailed,
    "rejected": MarkWithdrawalRejected,
}


@admin_router.get("/withdrawals", response_model=list[WithdrawalResponse])
async def admin_withdrawals(status: str | None = None) -> list[WithdrawalResponse]:
    if status:
        status = status.upper()
    return [WithdrawalResponse(**w.to_response()) for w in list_withdrawals(status)]


@admin_router.get("/withdrawals/stats", response_model=WithdrawalStatsResponse)
async def admin_withdrawal_stats() -> WithdrawalStatsResponse:
    return WithdrawalStatsResponse(**withdrawal_stats())


@admin_router.post("/withdrawals/{withdrawal_id}/{decision}", response_model=WithdrawalResponse)
async def decide_withdrawal(withdrawal_id: str, decision: str, body: AdminDecisionRequest) -> WithdrawalResponse:
    """Move a withdrawal to processing, done, failed or rejected."""
    command_cls = _DECISIONS.get(decision)
    if command_cls is None:
        raise HTTPException(status_code=404, detail=f"Unknown withdrawal decision: {decision}")

    fields = {"withdrawal_id": withdrawal_id, "admin_id": body.admin_id, "notes": body.notes}
    if command_cls is MarkWithdrawalDone:
        fields["transaction_reference"] = body.transaction_reference
    result = current_domain.process(command_cls(**fields), asynchronous=False)
    return WithdrawalResponse(**result)


@admin_router.get("/wallets/{user_id}/duplicates", response_model=DuplicatesResponse)
async def wallet_duplicates(user_id: str) -> DuplicatesResponse:
    clusters = find_duplicate_credits(user_id)
    return DuplicatesResponse(
        user_id=user_id,
        duplicate_groups=len(clusters),
        clusters=[c.to_dict() for c in clusters],
    )


@admin_router.get("/wallets/{user_id}/duplicates/preview", response_model=CorrectionPreviewResponse)
async def wallet_duplicates_preview(user_id: str) -> CorrectionPreviewResponse:
    return CorrectionPreviewResponse(**preview_correction(user_id))


@admin_router.post("/wallets/{user_id}/duplicates/correct")
async def correct_wallet_duplicates(user_id: str) -> dict:
    """Reverse duplicate credits. Safe to repeat: a clean wallet is left alone."""
    return current_domain.process(CorrectDuplicateCredits(user_id=user_id), asynchronous=False)


@admin_router.get("/wallets/{user_id}/duplicates/{reference_id}", response_model=ReferenceCheckResponse)
async def wallet_reference_check(user_id: str, reference_id: str) -> ReferenceCheckResponse:
    check = verify_reference(user_id, reference_id)
    check["transactions"] = [t.to_response() for t in check["transactions"]]
    return ReferenceCheckResponse(**check)


# ---------------------------------------------------------------------------
# Bank Router
# ---------------------------------------------------------------------------
bank_router = APIRouter(prefix="/banks", tags=["banks"])


@bank_router.post("", status_code=201, response_model=BankResponse)
async def add_bank(body: AddBankRequest) -> BankResponse:
    result = current_domain.process(AddBank(**body.model_dump()), asynchronous=False)
    return BankResponse(**result)


@bank_router.get("/user/{user_id}", response_model=list[BankResponse])
async def user_banks(user_id: str) -> list[BankResponse]:
    return [BankResponse(**b.to_response()) for b in list_banks(user_id)]


@bank_router.put("/{bank_id}", response_model=BankResponse)
async def update_bank(bank_id: str, body: UpdateBankRequest) -> BankResponse:
    command = UpdateBank(bank_id=bank_id, **body.model_dump(exclude_none=True))
    result = current_domain.process(command, asynchronous=False)
    return BankResponse(**result)


@bank_router.delete("/{bank_id}")
async def remove_bank(bank_id: str, user_id: str) -> dict:
    return current_domain.process(RemoveBank(bank_id=bank_id, user_id=user_id), asynchronous=False)
