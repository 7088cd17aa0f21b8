"""
Contribution Engine - Capped employer/employee statutory contributions.

Social security and health insurance schemes share one shape: both sides
contribute a percentage of a salary base, and the base is capped at the
scheme's maximum salary.

    capped_base = min(base, max_salary)
    employee    = capped_base * employee_rate%
    employer    = capped_base * employer_rate%

A disabled scheme produces no result at all, so the payslip omits the
component instead of showing a zero line.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from payroll_kernel.exceptions import InvalidConfigurationValueError
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.contributions")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


class ContributionBase(str, Enum):
    """Salary figure a contribution scheme is levied on."""

    BASIC = "basic"
    GROSS = "gross"


@dataclass(frozen=True)
class ContributionScheme:
    """
    Configuration of one contribution scheme.

    ``max_salary=None`` means the base is not capped.
    """

    enabled: bool
    employer_rate: Decimal  # percent
    employee_rate: Decimal  # percent
    max_salary: Decimal | None = None
    base: ContributionBase = ContributionBase.BASIC

    def __post_init__(self):
        for name in ("employer_rate", "employee_rate"):
            value = getattr(self, name)
            if value < _ZERO or value > _HUNDRED:
                raise InvalidConfigurationValueError(name, value, "must be within 0-100")
        if self.max_salary is not None and self.max_salary < _ZERO:
            raise InvalidConfigurationValueError(
                "max_salary", self.max_salary, "must not be negative"
            )

    @classmethod
    def disabled(cls, base: ContributionBase = ContributionBase.BASIC) -> ContributionScheme:
        return cls(enabled=False, employer_rate=_ZERO, employee_rate=_ZERO, base=base)


@dataclass(frozen=True)
class ContributionResult:
    """Unrounded contributions for one scheme."""

    base: Decimal
    capped_base: Decimal
    employee_amount: Decimal
    employer_amount: Decimal


def calculate_contribution(
    scheme: ContributionScheme,
    base: Decimal,
) -> ContributionResult | None:
    """
    Apply ``scheme`` to ``base``.

    Returns None when the scheme is disabled. A negative base contributes
    nothing.
    """
    if not scheme.enabled:
        return None

    capped = max(base, _ZERO)
    if scheme.max_salary is not None:
        capped = min(capped, scheme.max_salary)

    result = ContributionResult(
        base=base,
        capped_base=capped,
        employee_amount=capped * scheme.employee_rate / _HUNDRED,
        employer_amount=capped * scheme.employer_rate / _HUNDRED,
    )

    logger.debug("contribution_calculated", extra={
        "base_kind": scheme.base.value,
        "base": str(base),
        "capped_base": str(capped),
        "employee_amount": str(result.employee_amount),
        "employer_amount": str(result.employer_amount),
    })
    return result
