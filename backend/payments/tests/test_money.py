"""
Unit tests for payments.money module.

These tests guard against penny drift in bill totals, tax splits and
revenue-share commissions.
"""

import pytest
from decimal import Decimal

from payments.money import (
    currency_exponent,
    quantize_decimal,
    quantize,
    to_minor,
    from_minor,
    percentage_of,
    split_in_two,
    apply_rate_minor,
)

pytestmark = pytest.mark.unit


class TestCurrencyExponent:
    """Test currency exponent lookup."""

    def test_inr_exponent(self):
        assert currency_exponent("INR") == 2

    def test_jpy_exponent(self):
        assert currency_exponent("JPY") == 0

    def test_kwd_exponent(self):
        assert currency_exponent("KWD") == 3

    def test_case_insensitive(self):
        assert currency_exponent("inr") == 2

    def test_unknown_currency_defaults_to_2(self):
        assert currency_exponent("XXX") == 2

    def test_quantize_decimal(self):
        assert quantize_decimal("INR") == Decimal("0.01")
        assert quantize_decimal("JPY") == Decimal("1")


class TestQuantize:
    """Test Decimal quantization with banker's rounding."""

    def test_quantize_normal(self):
        assert quantize("INR", "10.127") == Decimal("10.13")

    def test_quantize_bankers_rounding_down(self):
        # 10.125 -> 10.12 (round to even)
        assert quantize("INR", "10.125") == Decimal("10.12")

    def test_quantize_bankers_rounding_up(self):
        # 10.135 -> 10.14 (round to even)
        assert quantize("INR", "10.135") == Decimal("10.14")

    def test_quantize_float_goes_through_str(self):
        assert quantize("INR", 0.1 + 0.2) == Decimal("0.30")


class TestMinorUnits:

    def test_to_minor(self):
        assert to_minor("INR", "999.00") == 99900
        assert to_minor("INR", Decimal("10.127")) == 1013

    def test_to_minor_zero_decimal_currency(self):
        assert to_minor("JPY", "1234.56") == 1235

    def test_from_minor(self):
        assert from_minor("INR", 1013) == Decimal("10.13")

    def test_from_minor_three_decimals(self):
        assert from_minor("KWD", 1234) == Decimal("1.234")


class TestPercentages:

    def test_percentage_of(self):
        assert percentage_of("INR", "250.00", "18") == Decimal("45.00")

    def test_split_in_two_even(self):
        assert split_in_two("INR", "45.00") == (Decimal("22.50"), Decimal("22.50"))

    def test_split_in_two_odd_minor_unit_goes_first(self):
        first, second = split_in_two("INR", "0.05")
        assert (first, second) == (Decimal("0.03"), Decimal("0.02"))
        assert first + second == Decimal("0.05")

    def test_apply_rate_minor(self):
        assert apply_rate_minor(99900, "0.2") == 19980

    def test_apply_rate_minor_rounds_half_even(self):
        assert apply_rate_minor(5, "0.5") == 2
        assert apply_rate_minor(7, "0.5") == 4
