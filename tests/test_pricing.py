"""
Tests for totals and money helpers
"""

from decimal import Decimal

from cartsync.money import to_decimal, round_money
from cartsync.cart.pricing import calculate_totals, summarize
from cartsync.cart import CartSnapshot


class TestCalculateTotals:

    def test_below_free_shipping(self):
        totals = calculate_totals(Decimal("1000"))

        assert totals.shipping == Decimal("99.00")
        assert totals.tax == Decimal("180.00")
        assert totals.total == Decimal("1279.00")

    def test_free_shipping_threshold(self):
        totals = calculate_totals(2999)

        assert totals.shipping == Decimal("0.00")

    def test_empty_cart_has_no_shipping(self):
        totals = calculate_totals(0)

        assert totals.total == Decimal("0.00")

    def test_empty_summary(self):
        summary = summarize(CartSnapshot.empty())

        assert summary["is_empty"] is True
        assert summary["items"] == []


class TestMoney:

    def test_to_decimal_from_float(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_to_decimal_invalid(self):
        assert to_decimal("abc") == Decimal("0")
        assert to_decimal(None) == Decimal("0")

    def test_round_money(self):
        assert round_money("10.005") == Decimal("10.01")
