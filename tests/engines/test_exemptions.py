"""
Tests for the Allowance Exemption Engine.

Covers every housing and travel rule variant, the zero floor and rule
variants passed to the wrong allowance.
"""

from decimal import Decimal

import pytest

from payroll_engines.exemptions import (
    ActualExpense,
    ActualRent,
    FixedAmount,
    HousingPercentageOfBasic,
    TravelPercentageOfBasic,
    evaluate_housing_exemption,
    evaluate_travel_exemption,
)
from payroll_kernel.exceptions import InvalidExemptionRuleError


class TestHousingExemption:

    def test_percentage_of_basic_with_minimum_rent(self):
        rule = HousingPercentageOfBasic(Decimal("50"), Decimal("10"))
        exemption = evaluate_housing_exemption(
            rule,
            allowance=Decimal("12000"),
            basic=Decimal("20000"),
            rent_paid=Decimal("8000"),
        )
        # min(12000, 8000 - 2000, 10000)
        assert exemption == Decimal("6000")

    def test_percentage_of_basic_without_minimum_rent(self):
        rule = HousingPercentageOfBasic(Decimal("40"))
        exemption = evaluate_housing_exemption(
            rule, allowance=Decimal("12000"), basic=Decimal("20000"),
        )
        assert exemption == Decimal("8000")

    def test_rent_below_minimum_floors_at_zero(self):
        rule = HousingPercentageOfBasic(Decimal("50"), Decimal("10"))
        exemption = evaluate_housing_exemption(
            rule,
            allowance=Decimal("12000"),
            basic=Decimal("20000"),
            rent_paid=Decimal("1000"),
        )
        assert exemption == Decimal("0")

    def test_no_rent_paid_with_minimum_rent(self):
        rule = HousingPercentageOfBasic(Decimal("50"), Decimal("10"))
        exemption = evaluate_housing_exemption(
            rule, allowance=Decimal("12000"), basic=Decimal("20000"),
        )
        assert exemption == Decimal("0")

    def test_fixed_amount_capped_by_allowance(self):
        exemption = evaluate_housing_exemption(
            FixedAmount(Decimal("5000")), allowance=Decimal("3000"), basic=Decimal("20000"),
        )
        assert exemption == Decimal("3000")

    def test_actual_rent(self):
        exemption = evaluate_housing_exemption(
            ActualRent(),
            allowance=Decimal("12000"),
            basic=Decimal("20000"),
            rent_paid=Decimal("9000"),
        )
        assert exemption == Decimal("9000")

    def test_travel_rule_rejected(self):
        with pytest.raises(InvalidExemptionRuleError):
            evaluate_housing_exemption(
                ActualExpense(), allowance=Decimal("100"), basic=Decimal("100"),
            )


class TestTravelExemption:

    def test_percentage_of_basic(self):
        exemption = evaluate_travel_exemption(
            TravelPercentageOfBasic(Decimal("10")),
            allowance=Decimal("3000"),
            basic=Decimal("20000"),
        )
        assert exemption == Decimal("2000")

    def test_fixed_amount(self):
        exemption = evaluate_travel_exemption(
            FixedAmount(Decimal("1600")), allowance=Decimal("3000"), basic=Decimal("20000"),
        )
        assert exemption == Decimal("1600")

    def test_actual_expense_capped_by_allowance(self):
        exemption = evaluate_travel_exemption(
            ActualExpense(),
            allowance=Decimal("3000"),
            basic=Decimal("20000"),
            expense_incurred=Decimal("4500"),
        )
        assert exemption == Decimal("3000")

    def test_housing_rule_rejected(self):
        with pytest.raises(InvalidExemptionRuleError):
            evaluate_travel_exemption(
                ActualRent(), allowance=Decimal("100"), basic=Decimal("100"),
            )
