from marketpay.api.errors import register_error_handlers
from marketpay.api.routes import (
    admin_router,
    bank_router,
    payment_router,
    wallet_router,
    webhook_router,
    withdrawal_router,
)

__all__ = [
    "admin_router",
    "bank_router",
    "payment_router",
    "register_error_handlers",
    "wallet_router",
    "webhook_router",
    "withdrawal_router",
]
