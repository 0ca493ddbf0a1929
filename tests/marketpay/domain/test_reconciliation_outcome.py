"""Tests for webhook reconciliation outcomes and their HTTP mapping."""

import pytest

from marketpay.payment.reconciliation import ReconciliationOutcome, ReconciliationStatus


class TestReconciliationOutcome:
    @pytest.mark.parametrize(
        ("status", "http_status"),
        [
            (ReconciliationStatus.PROCESSED, 200),
            (ReconciliationStatus.IGNORED, 200),
            (ReconciliationStatus.REJECTED, 400),
            (ReconciliationStatus.NOT_FOUND, 404),
        ],
    )
    def test_http_status(self, status, http_status):
        assert ReconciliationOutcome(status=status).http_status == http_status

    def test_body_carries_only_status(self):
        outcome = ReconciliationOutcome(
            status=ReconciliationStatus.PROCESSED,
            reference="PAY-1",
            event_type="charge.success",
            changed=True,
        )
        assert outcome.body() == {"status": "processed"}
