"""Exception-to-HTTP mapping for the MarketPay API.

Protean's handlers cover validation (400), not-found (404), invalid
state (409) and invalid operations (422). Two ``InvalidOperationError``
subclasses need their own status; Starlette resolves handlers along the
exception's MRO, so the more specific registration wins.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from marketpay.gateway.port import GatewayError
from marketpay.withdrawal.request import OTPVerificationError

logger = structlog.get_logger(__name__)


async def _otp_verification_error(request: Request, exc: OTPVerificationError) -> JSONResponse:
    return JSONResponse(status_code=403, content={"error": exc.message})


async def _gateway_error(request: Request, exc: GatewayError) -> JSONResponse:
    logger.warning("Gateway error surfaced to client", path=request.url.path, reference=exc.reference)
    return JSONResponse(status_code=502, content={"error": exc.message})


def register_error_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)
    app.add_exception_handler(OTPVerificationError, _otp_verification_error)
    app.add_exception_handler(GatewayError, _gateway_error)
