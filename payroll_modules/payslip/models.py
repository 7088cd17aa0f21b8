"""
Payslip Domain Models (``payroll_modules.payslip.models``).

Responsibility
--------------
Frozen value objects for a computed payslip: the pay period, the
breakdown lines, the exemption summary and the payslip itself.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Produced by
``PayslipAssembler``, persisted by ``PayslipModel.from_dto`` and returned
to callers by ``PayrollRunService``.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* ``PayPeriod`` month is within 1-12.

Audit relevance
---------------
* ``config_checksum`` identifies the exact TaxConfiguration a payslip was
  computed under.
* ``financial_signature`` is the identity used to decide whether a
  reprocessed payslip changed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from payroll_kernel.exceptions import InvalidConfigurationValueError
from payroll_modules.salary import ComponentCategory

_ZERO = Decimal("0")


class PayslipStatus(str, Enum):
    GENERATED = "generated"
    APPROVED = "approved"
    LOCKED = "locked"


@dataclass(frozen=True, order=True)
class PayPeriod:
    year: int
    month: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise InvalidConfigurationValueError("month", self.month, "must be within 1-12")
        if self.year < 1900:
            raise InvalidConfigurationValueError("year", self.year, "is out of range")

    @property
    def label(self) -> str:
        return f"{self.year}-{self.month:02d}"

    def reached(self, month: int, year: int) -> bool:
        """True when this period is at or after (month, year)."""
        return (self.year, self.month) >= (year, month)


@dataclass(frozen=True)
class PayslipLine:
    """One rounded earning or deduction line."""

    name: str
    category: ComponentCategory
    amount: Decimal
    is_taxable: bool = True
    is_statutory: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category.value,
            "amount": str(self.amount),
            "is_taxable": self.is_taxable,
            "is_statutory": self.is_statutory,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PayslipLine:
        return cls(
            name=data["name"],
            category=ComponentCategory.parse(data.get("category")),
            amount=Decimal(str(data["amount"])),
            is_taxable=bool(data.get("is_taxable", True)),
            is_statutory=bool(data.get("is_statutory", False)),
        )


@dataclass(frozen=True)
class ExemptionSummary:
    """Per-period amounts removed from taxable earnings before TDS."""

    housing: Decimal = _ZERO
    travel: Decimal = _ZERO
    standard_deduction: Decimal = _ZERO
    declared: Decimal = _ZERO

    @property
    def total(self) -> Decimal:
        return self.housing + self.travel + self.standard_deduction + self.declared


@dataclass(frozen=True)
class Payslip:
    """
    One employee's payslip for one payroll run.

    Contribution fields are ``None`` when the scheme is disabled;
    ``professional_tax_amount`` is ``None`` when professional tax is
    disabled.  ``annual_taxable_income`` is the figure the income-tax slabs
    were applied to.
    """

    id: UUID
    payslip_number: str
    payroll_run_id: UUID | None
    employee_id: str
    company_id: str
    month: int
    year: int
    financial_year: str
    currency: str

    ctc: Decimal
    gross_salary: Decimal
    total_deductions: Decimal
    net_salary: Decimal

    taxable_earnings: Decimal
    taxable_income: Decimal
    annual_taxable_income: Decimal
    tds_amount: Decimal
    professional_tax_amount: Decimal | None
    social_security_employee: Decimal | None
    social_security_employer: Decimal | None
    health_insurance_employee: Decimal | None
    health_insurance_employer: Decimal | None

    exemptions: ExemptionSummary
    earnings: tuple[PayslipLine, ...]
    deductions: tuple[PayslipLine, ...]

    config_checksum: str
    generated_at: datetime
    status: PayslipStatus = PayslipStatus.GENERATED

    @property
    def employer_contributions(self) -> Decimal:
        return (self.social_security_employer or _ZERO) + (
            self.health_insurance_employer or _ZERO
        )

    @property
    def cost_to_company(self) -> Decimal:
        """Gross pay plus employer-side contributions for the period."""
        return self.gross_salary + self.employer_contributions

    def financial_signature(self) -> tuple:
        """Every computed figure, excluding identity, status and timestamps."""
        return (
            self.employee_id,
            self.company_id,
            self.month,
            self.year,
            self.financial_year,
            self.currency,
            self.ctc,
            self.gross_salary,
            self.total_deductions,
            self.net_salary,
            self.taxable_earnings,
            self.taxable_income,
            self.annual_taxable_income,
            self.tds_amount,
            self.professional_tax_amount,
            self.social_security_employee,
            self.social_security_employer,
            self.health_insurance_employee,
            self.health_insurance_employer,
            self.exemptions,
            self.earnings,
            self.deductions,
            self.config_checksum,
        )
