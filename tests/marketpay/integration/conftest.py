import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from marketpay.api import (
    admin_router,
    bank_router,
    payment_router,
    register_error_handlers,
    wallet_router,
    webhook_router,
    withdrawal_router,
)


@pytest.fixture()
def client():
    app = FastAPI()
    register_error_handlers(app)
    for router in (payment_router, webhook_router, wallet_router, withdrawal_router, admin_router, bank_router):
        app.include_router(router)
    return TestClient(app)
