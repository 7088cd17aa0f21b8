"""
Tests for the Loan Engine.

Covers:
- EMI formula with and without interest
- Repayment schedule closing at zero
- Rejection of invalid loan terms
"""

from decimal import Decimal

import pytest

from payroll_engines.loans import calculate_emi, repayment_schedule
from payroll_kernel.exceptions import InvalidConfigurationValueError


class TestCalculateEmi:
    """Equated monthly instalments."""

    def test_interest_bearing_loan(self):
        """100000 at 12% over 12 months."""
        assert calculate_emi(Decimal("100000"), Decimal("12"), 12) == Decimal("8884.88")

    def test_zero_rate_divides_evenly(self):
        """Without interest the EMI is principal over tenure."""
        assert calculate_emi(Decimal("120000"), Decimal("0"), 12) == Decimal("10000.00")

    def test_zero_rate_rounds_half_up(self):
        assert calculate_emi(Decimal("100"), Decimal("0"), 3) == Decimal("33.33")

    def test_custom_quantum(self):
        """Currencies without a minor unit round to whole numbers."""
        emi = calculate_emi(Decimal("100000"), Decimal("12"), 12, quantum=Decimal("1"))
        assert emi == Decimal("8885")

    @pytest.mark.parametrize(
        "principal,rate,tenure",
        [
            (Decimal("0"), Decimal("10"), 12),
            (Decimal("-5"), Decimal("10"), 12),
            (Decimal("1000"), Decimal("-1"), 12),
            (Decimal("1000"), Decimal("10"), 0),
        ],
    )
    def test_invalid_terms_rejected(self, principal, rate, tenure):
        with pytest.raises(InvalidConfigurationValueError):
            calculate_emi(principal, rate, tenure)


class TestRepaymentSchedule:
    """Month-by-month split of interest and principal."""

    def test_schedule_length_matches_tenure(self):
        rows = repayment_schedule(Decimal("100000"), Decimal("12"), 12)
        assert [r.number for r in rows] == list(range(1, 13))

    def test_balance_closes_at_zero(self):
        rows = repayment_schedule(Decimal("100000"), Decimal("12"), 12)
        assert rows[-1].balance == Decimal("0")
        assert sum(r.principal for r in rows) == Decimal("100000")

    def test_first_row_interest(self):
        """First month's interest is one month of rate on the full principal."""
        rows = repayment_schedule(Decimal("100000"), Decimal("12"), 12)
        assert rows[0].interest == Decimal("1000.00")
        assert rows[0].principal == Decimal("7884.88")

    def test_zero_rate_schedule_has_no_interest(self):
        rows = repayment_schedule(Decimal("100"), Decimal("0"), 3)
        assert all(r.interest == Decimal("0") for r in rows)
        # The final row absorbs the rounding residue.
        assert rows[-1].principal == Decimal("33.34")
        assert rows[-1].balance == Decimal("0")
