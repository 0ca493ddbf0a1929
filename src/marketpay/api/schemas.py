"""Pydantic request/response schemas for the MarketPay API.

These are external contracts (anti-corruption layer), kept separate from
internal Protean commands.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
class ProcessPaymentRequest(BaseModel):
    order_id: str
    payment_method: str
    payer_email: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "order_id": "ord-001",
                    "payment_method": "CARD_GATEWAY_A",
                    "payer_email": "ada@example.com",
                    "metadata": {"channel": "web"},
                }
            ]
        }
    }


class RefundPaymentRequest(BaseModel):
    amount: float | None = Field(default=None, gt=0)
    reason: str | None = None


class PaymentResponse(BaseModel):
    payment_id: str
    payment_reference: str
    order_id: str | None = None
    user_id: str
    vendor_id: str | None = None
    payment_method: str
    provider: str
    purpose: str
    status: str
    amount: float
    currency: str
    commission_amount: float | None = None
    vendor_amount: float | None = None
    refunded_amount: float | None = None
    external_reference: str | None = None
    redirect_url: str | None = None
    failure_reason: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    processed_at: datetime | None = None
    created_at: datetime | None = None


class ConfigureGatewayRequest(BaseModel):
    payment_method: str
    should_succeed: bool = True
    failure_reason: str = "Card declined"
    verify_status: str = "completed"


class GatewayConfigResponse(BaseModel):
    payment_method: str
    gateway: str
    should_succeed: bool
    failure_reason: str
    verify_status: str


class WebhookAck(BaseModel):
    status: str


# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------
class OpenWalletRequest(BaseModel):
    user_id: str
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    daily_limit: float | None = Field(default=None, gt=0)
    monthly_limit: float | None = Field(default=None, gt=0)


class WalletIdResponse(BaseModel):
    wallet_id: str


class WalletResponse(BaseModel):
    wallet_id: str
    user_id: str
    balance: float
    currency: str
    is_active: bool
    daily_limit: float | None = None
    monthly_limit: float | None = None


class TransactionResponse(BaseModel):
    id: str
    wallet_id: str
    user_id: str
    transaction_type: str
    amount: float
    balance_before: float
    balance_after: float
    reference_id: str | None = None
    status: str
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    reversed_at: datetime | None = None
    reversal_reason: str | None = None
    created_at: datetime | None = None


class TransactionPageResponse(BaseModel):
    user_id: str
    page: int
    page_size: int
    total: int
    transactions: list[TransactionResponse]


class FundWalletRequest(BaseModel):
    user_id: str
    amount: float = Field(gt=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    payment_method: str
    payer_email: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "user_id": "user-001",
                    "amount": 5000,
                    "currency": "NGN",
                    "payment_method": "CARD_GATEWAY_A",
                    "payer_email": "ada@example.com",
                }
            ]
        }
    }


class CompleteFundingRequest(BaseModel):
    external_reference: str | None = None
    gateway_response: dict[str, Any] | None = None


# ---------------------------------------------------------------------------
# Duplicate-credit audit
# ---------------------------------------------------------------------------
class DuplicateClusterResponse(BaseModel):
    reference_id: str
    amount: float
    count: int
    kept_transaction_id: str
    removable_transaction_ids: list[str]
    removable_count: int
    removable_amount: float


class DuplicatesResponse(BaseModel):
    user_id: str
    duplicate_groups: int
    clusters: list[DuplicateClusterResponse]


class CorrectionPreviewResponse(DuplicatesResponse):
    transactions_to_remove: int
    total_amount_to_remove: float
    current_balance: float
    balance_after_fix: float
    warning: str | None = None


class ReferenceCheckResponse(BaseModel):
    user_id: str
    reference_id: str
    credit_count: int
    active_credit_count: int
    total_credited: float
    is_duplicated: bool
    transactions: list[TransactionResponse]


# ---------------------------------------------------------------------------
# Withdrawals
# ---------------------------------------------------------------------------
class GenerateOTPRequest(BaseModel):
    user_id: str
    amount: float = Field(gt=0)


class OTPIssuedResponse(BaseModel):
    otp_id: str
    expires_at: datetime


class ValidateOTPRequest(BaseModel):
    otp_id: str
    otp_code: str = Field(min_length=6, max_length=6)


class OTPCheckResponse(BaseModel):
    valid: bool
    outcome: str
    message: str


class WithdrawalRequest(BaseModel):
    user_id: str
    otp_id: str
    otp_code: str = Field(min_length=6, max_length=6)
    amount: float = Field(gt=0)
    currency: str = Field(min_length=3, max_length=3)
    country: str = Field(min_length=2, max_length=2)
    bank_name: str
    account_number: str
    account_name: str | None = None
    routing_number: str | None = None
    account_type: str | None = None
    recipient_type: str | None = None
    recipient_address: str | None = None
    recipient_city: str | None = None
    recipient_state: str | None = None
    recipient_zip_code: str | None = None
    sort_code: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "user_id": "user-001",
                    "otp_id": "5f2b0c0e9d7a4e51b1f3c2a4d6e8f0a1",
                    "otp_code": "123456",
                    "amount": 1000,
                    "currency": "NGN",
                    "country": "NG",
                    "bank_name": "First Bank",
                    "account_number": "0123456789",
                    "account_name": "Ada Obi",
                }
            ]
        }
    }


class WithdrawalResponse(BaseModel):
    id: str
    user_id: str
    amount: float
    fee: float
    net_amount: float | None = None
    currency: str
    country: str
    bank_name: str
    account_number: str
    account_name: str | None = None
    status: str
    is_otp_verified: bool
    admin_notes: str | None = None
    processed_by: str | None = None
    processed_at: datetime | None = None
    transaction_reference: str | None = None
    created_at: datetime | None = None


class AdminDecisionRequest(BaseModel):
    admin_id: str
    notes: str | None = None
    transaction_reference: str | None = None


class WithdrawalStatsResponse(BaseModel):
    total_requests: int
    pending_count: int
    pending_amount: float
    processing_count: int
    processing_amount: float
    completed_count: int
    completed_amount: float
    failed_count: int
    failed_amount: float
    rejected_count: int
    rejected_amount: float


# ---------------------------------------------------------------------------
# Banks
# ---------------------------------------------------------------------------
class AddBankRequest(BaseModel):
    user_id: str
    bank_name: str
    account_number: str
    account_name: str
    country: str | None = Field(default=None, min_length=2, max_length=2)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    routing_number: str | None = None
    sort_code: str | None = None
    is_default: bool = False


class UpdateBankRequest(BaseModel):
    user_id: str
    bank_name: str | None = None
    account_number: str | None = None
    account_name: str | None = None
    routing_number: str | None = None
    sort_code: str | None = None
    is_default: bool | None = None


class BankResponse(BaseModel):
    id: str
    user_id: str
    bank_name: str
    account_number: str
    masked_account_number: str
    account_name: str
    country: str
    currency: str
    routing_number: str | None = None
    sort_code: str | None = None
    is_default: bool
