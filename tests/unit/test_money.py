"""
Unit tests for Money, Currency and the currency registry.

Verifies:
- Rounding to each currency's minor unit, half-up
- Float constructor prohibition
- Same-currency arithmetic
- Registry lookups and validation
"""

from decimal import ROUND_HALF_EVEN, Decimal

import pytest

from payroll_kernel.domain.currency import CurrencyRegistry
from payroll_kernel.domain.values import Currency, Money
from payroll_kernel.exceptions import CurrencyMismatchError, InvalidCurrencyError


class TestMoneyRounding:
    """Rounding to the currency's minor unit."""

    def test_half_up_by_default(self):
        assert Money.of("3541.665", "INR").round().amount == Decimal("3541.67")

    def test_explicit_rounding_mode(self):
        assert Money.of("0.125", "INR").round(ROUND_HALF_EVEN).amount == Decimal("0.12")

    def test_zero_decimal_currency(self):
        assert Money.of("1500.5", "JPY").round().amount == Decimal("1501")

    def test_three_decimal_currency(self):
        assert Money.of("1.23456", "KWD").round().amount == Decimal("1.235")

    def test_round_returns_new_value(self):
        original = Money.of("10.005", "USD")
        rounded = original.round()
        assert original.amount == Decimal("10.005")
        assert rounded.amount == Decimal("10.01")


class TestMoneyConstruction:

    def test_float_rejected(self):
        with pytest.raises(ValueError, match="float"):
            Money(amount=1.5, currency="INR")

    def test_int_and_str_accepted(self):
        assert Money.of(100, "INR").amount == Decimal("100")
        assert Money.of("100.50", "inr").currency.code == "INR"

    def test_unknown_currency(self):
        with pytest.raises(InvalidCurrencyError):
            Money.of("1", "XXX")

    def test_zero(self):
        assert Money.zero("INR") == Money.of("0.00", "INR")

    def test_sum_from_zero(self):
        lines = [Money.of("20000", "INR"), Money.of("10000.50", "INR")]
        assert sum(lines, Money.zero("INR")).amount == Decimal("30000.50")

    def test_sum_rejects_mixed_currencies(self):
        with pytest.raises(CurrencyMismatchError):
            sum([Money.of("1", "INR"), Money.of("1", "USD")], Money.zero("INR"))


class TestMoneyArithmetic:

    def test_add_and_subtract(self):
        a, b = Money.of("100.25", "INR"), Money.of("0.75", "INR")
        assert (a + b).amount == Decimal("101.00")
        assert (a - b).amount == Decimal("99.50")

    def test_multiply_and_divide(self):
        salary = Money.of("600000", "INR")
        assert (salary / 12).amount == Decimal("50000")
        assert (salary * Decimal("0.12")).amount == Decimal("72000.00")

    def test_currency_mismatch(self):
        with pytest.raises(CurrencyMismatchError):
            Money.of("1", "INR") + Money.of("1", "USD")

    def test_str(self):
        assert str(Money.of("1.50", "INR")) == "1.50 INR"


class TestCurrencyRegistry:

    def test_decimal_places(self):
        assert CurrencyRegistry.get_decimal_places("INR") == 2
        assert CurrencyRegistry.get_decimal_places("JPY") == 0
        assert CurrencyRegistry.get_decimal_places("BHD") == 3

    def test_rounding_tolerance(self):
        assert CurrencyRegistry.get_rounding_tolerance("INR") == Decimal("0.01")
        assert CurrencyRegistry.get_rounding_tolerance("JPY") == Decimal("1")

    def test_validate_normalizes(self):
        assert CurrencyRegistry.validate(" inr ") == "INR"

    @pytest.mark.parametrize("code", ["", "IN", "XYZ"])
    def test_validate_rejects(self, code):
        with pytest.raises(InvalidCurrencyError):
            CurrencyRegistry.validate(code)

    def test_currency_value_object(self):
        assert str(Currency("usd")) == "USD"
        assert Currency("INR").name == "Indian Rupee"
