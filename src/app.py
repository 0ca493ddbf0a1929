"""MarketPay FastAPI application.

Web server that processes commands synchronously via HTTP. Every API
request runs inside the MarketPay domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - "test"       → event_processing = "sync"  (handlers fire in UoW)
#   - "production" → event_processing = "async" (handlers fire via Engine)
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from marketpay.domain import marketpay
from marketpay.utils.logging import configure_logging

configure_logging()
marketpay.init()

# ---------------------------------------------------------------------------
# Routes served inside the domain context
# ---------------------------------------------------------------------------
_DOMAIN_PREFIXES = ("/payments", "/webhooks", "/wallet", "/withdrawals", "/admin", "/banks")


def _in_domain(path: str) -> bool:
    return path.startswith(_DOMAIN_PREFIXES)


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="MarketPay API",
    description="Marketplace payments, wallet ledger and withdrawals",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the MarketPay domain context for each API request."""
    if _in_domain(request.url.path):
        with marketpay.domain_context():
            response = await call_next(request)
        return response
    # Health check, docs
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from marketpay.api import (  # noqa: E402
    admin_router,
    bank_router,
    payment_router,
    register_error_handlers,
    wallet_router,
    webhook_router,
    withdrawal_router,
)

register_error_handlers(app)

app.include_router(payment_router)
app.include_router(webhook_router)
app.include_router(wallet_router)
app.include_router(withdrawal_router)
app.include_router(admin_router)
app.include_router(bank_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {"marketpay": {"name": marketpay.name}},
        }
    )
