"""
Salary Structures (``payroll_modules.salary``).

Responsibility
--------------
Company-owned salary structures and the resolution of their components
into per-period amounts for one employee.

Architecture position
---------------------
**Modules layer** -- pure data definitions and one pure function
(``resolve_components``).  Consumed by the payslip assembler.

Invariants enforced
-------------------
* Components resolve in ``priority`` order; ties keep declaration order.
* A percentage component's base must already be resolved when it is
  reached.  The pseudo-bases ``ctc`` and ``gross`` are always available
  (``gross`` only once at least one earning has resolved).
* Statutory deduction components are never resolved from the structure;
  the statutory calculators own those amounts.
* All amounts are ``Decimal`` and unrounded here; rounding happens once,
  per breakdown line, in the assembler.

Failure modes
-------------
* ``UnresolvedComponentBaseError`` -- percentage base not yet resolved.
* ``InvalidConfigurationValueError`` -- negative value or CTC.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from payroll_kernel.exceptions import (
    InvalidConfigurationValueError,
    UnresolvedComponentBaseError,
)
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.salary")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

CTC_BASE = "ctc"
GROSS_BASE = "gross"


class ComponentType(str, Enum):
    EARNING = "earning"
    DEDUCTION = "deduction"


class ComponentCategory(str, Enum):
    """Category of a salary component or payslip line."""

    # Earnings
    BASIC = "basic"
    HOUSING_ALLOWANCE = "housing_allowance"
    TRAVEL_ALLOWANCE = "travel_allowance"
    SPECIAL_ALLOWANCE = "special_allowance"
    MEDICAL_ALLOWANCE = "medical_allowance"
    BONUS = "bonus"
    VARIABLE_PAY = "variable_pay"
    ARREARS = "arrears"
    REIMBURSEMENT = "reimbursement"

    # Deductions
    INCOME_TAX = "income_tax"
    PROFESSIONAL_TAX = "professional_tax"
    PROVIDENT_FUND = "provident_fund"
    HEALTH_INSURANCE = "health_insurance"
    LOAN = "loan"
    ADVANCE = "advance"

    OTHER = "other"

    @classmethod
    def parse(cls, value: str | ComponentCategory | None) -> ComponentCategory:
        """Parse a category name; unknown names map to ``OTHER``."""
        if isinstance(value, ComponentCategory):
            return value
        if not value:
            return cls.OTHER
        key = str(value).strip().lower()
        key = _CATEGORY_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            logger.debug("component_category_unknown", extra={"category": value})
            return cls.OTHER


_CATEGORY_ALIASES = {
    "hra": "housing_allowance",
    "house_rent_allowance": "housing_allowance",
    "transport_allowance": "travel_allowance",
    "conveyance": "travel_allowance",
    "lta": "travel_allowance",
    "pf": "provident_fund",
    "esi": "health_insurance",
    "tds": "income_tax",
}

# Deduction categories whose amounts are computed from TaxConfiguration.
STATUTORY_DEDUCTION_CATEGORIES = frozenset({
    ComponentCategory.INCOME_TAX,
    ComponentCategory.PROFESSIONAL_TAX,
    ComponentCategory.PROVIDENT_FUND,
    ComponentCategory.HEALTH_INSURANCE,
})


@dataclass(frozen=True)
class SalaryComponent:
    """
    One line of a salary structure.

    ``value`` is a per-period amount, or a percentage of ``percentage_of``
    when ``is_percentage`` is set.
    """

    name: str
    component_type: ComponentType
    category: ComponentCategory
    value: Decimal
    is_percentage: bool = False
    percentage_of: str | None = None
    is_taxable: bool = True
    is_statutory: bool = False
    priority: int = 0
    is_active: bool = True

    def __post_init__(self):
        if self.value < _ZERO:
            raise InvalidConfigurationValueError(
                f"component.{self.name}.value", self.value, "must not be negative"
            )
        if self.is_percentage and not self.percentage_of:
            raise UnresolvedComponentBaseError(self.name, self.percentage_of)

    @property
    def is_earning(self) -> bool:
        return self.component_type == ComponentType.EARNING

    @property
    def is_statutory_deduction(self) -> bool:
        return (
            self.component_type == ComponentType.DEDUCTION
            and (self.is_statutory or self.category in STATUTORY_DEDUCTION_CATEGORIES)
        )


@dataclass(frozen=True)
class SalaryStructure:
    id: str | None
    company_id: str
    name: str
    components: tuple[SalaryComponent, ...]
    is_active: bool = True

    def ordered_components(self) -> tuple[SalaryComponent, ...]:
        """Active components by priority; ``sorted`` is stable on ties."""
        active = [c for c in self.components if c.is_active]
        return tuple(sorted(active, key=lambda c: c.priority))


@dataclass(frozen=True)
class SalaryAssignment:
    """A structure assigned to an employee with an annual CTC."""

    structure: SalaryStructure
    ctc: Decimal

    def __post_init__(self):
        if self.ctc < _ZERO:
            raise InvalidConfigurationValueError("ctc", self.ctc, "must not be negative")


@dataclass(frozen=True)
class ResolvedComponent:
    """A component with its unrounded per-period amount."""

    name: str
    component_type: ComponentType
    category: ComponentCategory
    amount: Decimal
    is_taxable: bool
    is_statutory: bool

    @property
    def is_earning(self) -> bool:
        return self.component_type == ComponentType.EARNING


def _lookup_base(
    component: SalaryComponent,
    resolved: list[ResolvedComponent],
    period_ctc: Decimal,
) -> Decimal:
    key = (component.percentage_of or "").strip().lower()

    if key == CTC_BASE:
        return period_ctc

    if key == GROSS_BASE:
        earnings = [r.amount for r in resolved if r.is_earning]
        if not earnings:
            raise UnresolvedComponentBaseError(component.name, component.percentage_of)
        return sum(earnings, _ZERO)

    by_name = [r.amount for r in resolved if r.name.strip().lower() == key]
    if by_name:
        return sum(by_name, _ZERO)

    category = ComponentCategory.parse(key)
    if category != ComponentCategory.OTHER:
        by_category = [r.amount for r in resolved if r.category == category]
        if by_category:
            return sum(by_category, _ZERO)

    raise UnresolvedComponentBaseError(component.name, component.percentage_of)


def resolve_components(
    assignment: SalaryAssignment,
    periods_per_year: int,
) -> tuple[ResolvedComponent, ...]:
    """
    Resolve the assigned structure into per-period amounts.

    A percentage base is matched, in order, against the pseudo-bases
    ``ctc`` and ``gross``, the name of an already-resolved component, and
    the category of already-resolved components (``basic`` sums every
    resolved BASIC line).

    Raises:
        UnresolvedComponentBaseError: A percentage base is not resolved
            before the component that needs it.
    """
    if periods_per_year <= 0:
        raise InvalidConfigurationValueError(
            "periods_per_year", periods_per_year, "must be positive"
        )
    period_ctc = assignment.ctc / Decimal(periods_per_year)
    resolved: list[ResolvedComponent] = []

    for component in assignment.structure.ordered_components():
        if component.is_statutory_deduction:
            logger.debug(
                "statutory_component_skipped",
                extra={
                    "component": component.name,
                    "category": component.category.value,
                },
            )
            continue

        if component.is_percentage:
            base = _lookup_base(component, resolved, period_ctc)
            amount = base * component.value / _HUNDRED
        else:
            amount = component.value

        resolved.append(
            ResolvedComponent(
                name=component.name,
                component_type=component.component_type,
                category=component.category,
                amount=amount,
                is_taxable=component.is_taxable,
                is_statutory=component.is_statutory,
            )
        )

    return tuple(resolved)
