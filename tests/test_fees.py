"""Tests for bazaar_ledger.fees."""
from __future__ import annotations

import pytest

from bazaar_ledger.fees import (
    PurchaseQuote,
    calculate_platform_fee,
    calculate_refund,
    quote_purchase,
)


class TestPlatformFee:
    """Tests for calculate_platform_fee."""

    def test_basic_fee(self):
        assert calculate_platform_fee(200, 3) == 6

    @pytest.mark.parametrize(
        "total_price,rate,expected",
        [
            (99, 1, 0),
            (100, 1, 1),
            (199, 1, 1),
            (33, 3, 0),
            (1000, 0, 0),
            (1000, 100, 1000),
        ],
    )
    def test_fee_truncates(self, total_price, rate, expected):
        """Fee should floor, never round up."""
        assert calculate_platform_fee(total_price, rate) == expected


class TestRefund:
    """Tests for calculate_refund."""

    def test_basic_refund(self):
        assert calculate_refund(2, 150, 85) == 255

    def test_refund_truncates(self):
        # 1 * 7 * 50 / 100 = 3.5
        assert calculate_refund(1, 7, 50) == 3

    def test_zero_rate(self):
        assert calculate_refund(10, 150, 0) == 0


class TestQuotePurchase:
    """Tests for quote_purchase."""

    def test_quote(self):
        quote = quote_purchase(2, 100, 3)

        assert quote == PurchaseQuote(quantity=2, unit_cost=100, total_price=200, fee=6)
        assert quote.total_charge == 206

    def test_to_dict(self):
        assert quote_purchase(5, 10, 10).to_dict() == {
            "quantity": 5,
            "unit_cost": 10,
            "total_price": 50,
            "fee": 5,
            "total_charge": 55,
        }

    def test_quote_is_immutable(self):
        quote = quote_purchase(1, 1, 1)
        with pytest.raises(AttributeError):
            quote.fee = 10
