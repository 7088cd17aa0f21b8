"""
TaxConfiguration schema.

A tax configuration is scoped by (company, country, state, financial year)
and carries everything the statutory calculator needs: income tax slabs,
contribution schemes, professional tax slabs, allowance exemption rules,
the standard deduction and the per-section declaration caps.

Configurations are validated when they are constructed (parsed from YAML or
from the backend), never while computing a payslip. A new financial year
gets a new configuration; existing ones are never mutated.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from payroll_engines.contributions import ContributionBase, ContributionScheme
from payroll_engines.exemptions import HousingExemptionRule, TravelExemptionRule
from payroll_engines.slabs import IncomeTaxSlab, ProfessionalTaxSlab, validate_slabs
from payroll_kernel.domain.currency import CurrencyRegistry
from payroll_kernel.exceptions import (
    InvalidConfigurationValueError,
    PayrollKernelError,
    RejectedTaxConfigurationError,
    UnknownSectionError,
)
from payroll_kernel.logging_config import get_logger

logger = get_logger("config.schema")

_ZERO = Decimal("0")

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


class SectionKey(str, Enum):
    """Closed set of declarable tax-saving sections."""

    SECTION_80C = "section80C"
    SECTION_80D = "section80D"
    SECTION_80G = "section80G"
    SECTION_24 = "section24"
    SECTION_80E = "section80E"
    SECTION_80CCD1B = "section80CCD1B"
    SECTION_80TTA = "section80TTA"

    @classmethod
    def parse(cls, value: str | SectionKey) -> SectionKey:
        """Parse a section name; unknown names are rejected."""
        if isinstance(value, SectionKey):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownSectionError(str(value)) from None


class TdsNormalization(str, Enum):
    """How annual slabs are applied to one pay period's taxable income."""

    ANNUALIZED = "annualized"
    PER_PERIOD = "per_period"


# ---------------------------------------------------------------------------
# Financial year
# ---------------------------------------------------------------------------

_FY_SPLIT = re.compile(r"^(\d{4})-(\d{2}|\d{4})$")
_FY_SINGLE = re.compile(r"^(\d{4})$")


@dataclass(frozen=True)
class FinancialYear:
    """
    A twelve-month financial year.

    Labels: ``"2024-25"`` and ``"2024-2025"`` start in April by default;
    ``"2024"`` starts in January by default.
    """

    label: str
    start_year: int
    start_month: int

    @classmethod
    def parse(cls, label: str, start_month: int | None = None) -> FinancialYear:
        text = str(label).strip()
        split = _FY_SPLIT.match(text)
        if split:
            start_year = int(split.group(1))
            end = split.group(2)
            if len(end) == 4:
                follows = int(end) == start_year + 1
            else:
                follows = int(end) == (start_year + 1) % 100
            if not follows:
                raise InvalidConfigurationValueError(
                    "financial_year", label, "end year must follow start year"
                )
            default_month = 4
        elif _FY_SINGLE.match(text):
            start_year = int(text)
            default_month = 1
        else:
            raise InvalidConfigurationValueError(
                "financial_year", label, "expected YYYY, YYYY-YY or YYYY-YYYY"
            )

        month = start_month if start_month is not None else default_month
        if not 1 <= month <= 12:
            raise InvalidConfigurationValueError(
                "financial_year_start_month", month, "must be within 1-12"
            )
        return cls(label=text, start_year=start_year, start_month=month)

    def _index(self, month: int, year: int) -> int:
        return (year - self.start_year) * 12 + (month - self.start_month)

    def contains(self, month: int, year: int) -> bool:
        """True when the calendar (month, year) falls in this financial year."""
        return 0 <= self._index(month, year) < 12


# ---------------------------------------------------------------------------
# Tax configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TaxConfiguration:
    """
    Statutory configuration for one company, jurisdiction and financial year.

    Rates are percentages. Amounts (slab bounds, standard deduction, caps)
    are annual figures in ``currency``.
    """

    company_id: str
    country: str
    financial_year: str
    state: str | None = None
    id: str | None = None
    currency: str = "INR"

    income_tax_enabled: bool = True
    income_tax_slabs: tuple[IncomeTaxSlab, ...] = ()

    social_security: ContributionScheme = field(
        default_factory=lambda: ContributionScheme.disabled(ContributionBase.BASIC)
    )
    health_insurance: ContributionScheme = field(
        default_factory=lambda: ContributionScheme.disabled(ContributionBase.GROSS)
    )

    professional_tax_enabled: bool = False
    professional_tax_slabs: tuple[ProfessionalTaxSlab, ...] = ()

    housing_allowance_exemption: HousingExemptionRule | None = None
    travel_allowance_exemption: TravelExemptionRule | None = None

    standard_deduction: Decimal = _ZERO
    tax_exemptions: dict[SectionKey, Decimal] = field(default_factory=dict)

    pay_periods_per_year: int = 12
    tds_normalization: TdsNormalization = TdsNormalization.ANNUALIZED
    financial_year_start_month: int | None = None
    is_active: bool = True
    checksum: str = ""

    def __post_init__(self):
        object.__setattr__(self, "currency", CurrencyRegistry.validate(self.currency))

        if self.income_tax_enabled or self.income_tax_slabs:
            validate_slabs(self.income_tax_slabs, "income_tax")

        if self.professional_tax_enabled or self.professional_tax_slabs:
            validate_slabs(self.professional_tax_slabs, "professional_tax")

        if self.standard_deduction < _ZERO:
            raise InvalidConfigurationValueError(
                "standard_deduction", self.standard_deduction, "must not be negative"
            )
        if self.pay_periods_per_year <= 0:
            raise InvalidConfigurationValueError(
                "pay_periods_per_year", self.pay_periods_per_year, "must be positive"
            )
        for section, cap in self.tax_exemptions.items():
            if not isinstance(section, SectionKey):
                raise UnknownSectionError(str(section))
            if cap < _ZERO:
                raise InvalidConfigurationValueError(
                    f"tax_exemptions.{section.value}", cap, "must not be negative"
                )

        FinancialYear.parse(self.financial_year, self.financial_year_start_month)

        logger.debug(
            "tax_configuration_initialized",
            extra={
                "company_id": self.company_id,
                "country": self.country,
                "state": self.state,
                "financial_year": self.financial_year,
                "income_tax_slab_count": len(self.income_tax_slabs),
                "professional_tax_enabled": self.professional_tax_enabled,
                "tds_normalization": self.tds_normalization.value,
            },
        )

    @property
    def fiscal_year(self) -> FinancialYear:
        return FinancialYear.parse(self.financial_year, self.financial_year_start_month)

    def covers(self, month: int, year: int) -> bool:
        """True when the pay period falls inside this configuration's year."""
        return self.fiscal_year.contains(month, year)

    def section_cap(self, section: SectionKey) -> Decimal | None:
        return self.tax_exemptions.get(section)



@dataclass(frozen=True)
class RejectedTaxConfiguration:
    """
    A backend configuration record that failed validation.

    Only its scope is kept. It takes part in configuration lookup like a
    valid configuration, so the employees it would apply to fail with its
    validation error while everyone else is still calculated.
    """

    company_id: str
    country: str | None
    state: str | None
    financial_year: str | None
    error_code: str
    message: str
    id: str | None = None
    financial_year_start_month: int | None = None
    is_active: bool = True
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(cls, scope: dict[str, Any], exc: PayrollKernelError) -> RejectedTaxConfiguration:
        start_month = scope.get("financial_year_start_month")
        return cls(
            company_id=str(scope.get("company_id")),
            country=scope.get("country"),
            state=scope.get("state"),
            financial_year=(
                str(scope["financial_year"]) if scope.get("financial_year") is not None else None
            ),
            error_code=exc.code,
            message=str(exc),
            id=str(scope["id"]) if scope.get("id") is not None else None,
            financial_year_start_month=start_month if isinstance(start_month, int) else None,
            is_active=bool(scope.get("is_active", True)),
            details=exc.details(),
        )

    def covers(self, month: int, year: int) -> bool:
        # An unreadable year cannot be ruled out for any period
        if self.financial_year is None:
            return True
        try:
            fiscal_year = FinancialYear.parse(self.financial_year, self.financial_year_start_month)
        except InvalidConfigurationValueError:
            return True
        return fiscal_year.contains(month, year)

    def error(self) -> RejectedTaxConfigurationError:
        return RejectedTaxConfigurationError(
            self.id,
            self.company_id,
            self.country,
            self.state,
            self.financial_year,
            self.error_code,
            self.message,
        )
