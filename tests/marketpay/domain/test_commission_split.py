"""Tests for splitting an order payment between vendor and platform."""

import pytest
from protean.exceptions import ValidationError

from marketpay.wallet.ledger import split_commission


class TestSplitCommission:
    def test_fifteen_percent_of_5000(self):
        assert split_commission(5000, 0.15) == (750.0, 4250.0)

    def test_parts_always_add_up(self):
        commission, vendor_amount = split_commission(99.99, 0.175)
        assert round(commission + vendor_amount, 2) == 99.99

    def test_commission_is_rounded_to_cents(self):
        commission, _ = split_commission(10.01, 0.333)
        assert commission == 3.33

    def test_zero_rate_gives_vendor_everything(self):
        assert split_commission(1200, 0) == (0.0, 1200.0)

    def test_uses_configured_rate_by_default(self, commission_rate):
        commission_rate(0.10)
        assert split_commission(1000) == (100.0, 900.0)

    def test_default_configured_rate_is_twenty_percent(self):
        assert split_commission(1000) == (200.0, 800.0)

    @pytest.mark.parametrize("rate", [-0.1, 1, 1.5])
    def test_rate_outside_zero_to_one_is_rejected(self, rate):
        with pytest.raises(ValidationError) as exc:
            split_commission(1000, rate)
        assert "commission_rate" in exc.value.messages
