"""
Loan Engine - Equated monthly instalments and repayment schedules.

    r   = annual_rate% / 12 / 100
    EMI = P * r * (1 + r)^n / ((1 + r)^n - 1)      (r > 0)
    EMI = P / n                                     (r = 0)

The EMI is rounded to the minor unit given by ``quantum``; the final
schedule row absorbs the rounding residue so the balance closes at zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from payroll_kernel.exceptions import InvalidConfigurationValueError
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.loans")

_ZERO = Decimal("0")
_ONE = Decimal("1")
_MONTHS = Decimal("12")
_HUNDRED = Decimal("100")
_CENT = Decimal("0.01")


@dataclass(frozen=True)
class RepaymentInstalment:
    """One month of a repayment schedule."""

    number: int
    emi: Decimal
    principal: Decimal
    interest: Decimal
    balance: Decimal


def _check_terms(principal: Decimal, annual_rate: Decimal, tenure_months: int) -> None:
    if principal <= _ZERO:
        raise InvalidConfigurationValueError("principal", principal, "must be positive")
    if annual_rate < _ZERO:
        raise InvalidConfigurationValueError("interest_rate", annual_rate, "must not be negative")
    if tenure_months <= 0:
        raise InvalidConfigurationValueError("tenure_months", tenure_months, "must be positive")


def calculate_emi(
    principal: Decimal,
    annual_rate: Decimal,
    tenure_months: int,
    quantum: Decimal = _CENT,
) -> Decimal:
    """Equated monthly instalment, rounded half-up to ``quantum``."""
    _check_terms(principal, annual_rate, tenure_months)

    monthly_rate = annual_rate / _MONTHS / _HUNDRED
    if monthly_rate == _ZERO:
        emi = principal / Decimal(tenure_months)
    else:
        growth = (_ONE + monthly_rate) ** tenure_months
        emi = principal * monthly_rate * growth / (growth - _ONE)

    return emi.quantize(quantum, rounding=ROUND_HALF_UP)


def repayment_schedule(
    principal: Decimal,
    annual_rate: Decimal,
    tenure_months: int,
    quantum: Decimal = _CENT,
) -> tuple[RepaymentInstalment, ...]:
    """Month-by-month split of each EMI into interest and principal."""
    emi = calculate_emi(principal, annual_rate, tenure_months, quantum)
    monthly_rate = annual_rate / _MONTHS / _HUNDRED

    rows: list[RepaymentInstalment] = []
    balance = principal
    for number in range(1, tenure_months + 1):
        interest = (balance * monthly_rate).quantize(quantum, rounding=ROUND_HALF_UP)
        if number == tenure_months:
            principal_part = balance
            payment = principal_part + interest
        else:
            principal_part = min(emi - interest, balance)
            payment = emi
        balance -= principal_part
        rows.append(RepaymentInstalment(
            number=number,
            emi=payment,
            principal=principal_part,
            interest=interest,
            balance=balance,
        ))

    logger.debug("loan_schedule_built", extra={
        "principal": str(principal),
        "annual_rate": str(annual_rate),
        "tenure_months": tenure_months,
        "emi": str(emi),
    })
    return tuple(rows)
