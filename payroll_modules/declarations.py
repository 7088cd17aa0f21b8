"""
Tax Declarations (``payroll_modules.declarations``).

Responsibility
--------------
Employee self-declared tax-saving amounts per financial year, their
lifecycle, and the capped amount a payslip may deduct from taxable
income.

Architecture position
---------------------
**Modules layer** -- frozen value objects and pure functions.  Caps come
from ``TaxConfiguration.tax_exemptions`` at calculation time; nothing is
capped when a declaration is stored.

Invariants enforced
-------------------
* Section names form a closed set (``SectionKey``); unknown names are
  rejected when a declaration is parsed.
* Only VERIFIED declarations count toward exemptions.
* Each section is capped by its configured ceiling; a section without a
  configured ceiling contributes nothing.
* The backend-verified amount is an overall ceiling on what counts.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping

from payroll_config.schema import FinancialYear, SectionKey, TaxConfiguration
from payroll_kernel.exceptions import InvalidConfigurationValueError
from payroll_kernel.logging_config import get_logger
from payroll_modules.workflows import TAX_DECLARATION_WORKFLOW

logger = get_logger("modules.declarations")

_ZERO = Decimal("0")


class DeclarationStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    VERIFIED = "verified"
    REJECTED = "rejected"


@dataclass(frozen=True)
class DeclarationSection:
    """Declared items under one section, e.g. section80C: {ppf: 50000}."""

    section: SectionKey
    items: Mapping[str, Decimal] = field(default_factory=dict)

    def __post_init__(self):
        for item, amount in self.items.items():
            if amount < _ZERO:
                raise InvalidConfigurationValueError(
                    f"declarations.{self.section.value}.{item}", amount,
                    "must not be negative",
                )

    @property
    def total(self) -> Decimal:
        return sum(self.items.values(), _ZERO)


@dataclass(frozen=True)
class TaxDeclaration:
    employee_id: str
    financial_year: str
    sections: tuple[DeclarationSection, ...] = ()
    status: DeclarationStatus = DeclarationStatus.DRAFT
    verified_amount: Decimal | None = None
    id: str | None = None
    company_id: str | None = None

    @property
    def declared_total(self) -> Decimal:
        return sum((s.total for s in self.sections), _ZERO)

    def section_total(self, section: SectionKey) -> Decimal:
        return sum((s.total for s in self.sections if s.section == section), _ZERO)


@dataclass(frozen=True)
class DeclaredExemptions:
    """Annual declared exemptions after section caps and the verified ceiling."""

    by_section: Mapping[SectionKey, Decimal]
    total: Decimal


# -----------------------------------------------------------------------------
# Parsing
# -----------------------------------------------------------------------------


def parse_declaration_sections(
    data: Mapping[str, Mapping[str, Any]] | None,
) -> tuple[DeclarationSection, ...]:
    """
    Parse ``{section: {item: amount}}``.

    Raises:
        UnknownSectionError: A section name outside the closed set.
    """
    sections = []
    for name, items in (data or {}).items():
        key = SectionKey.parse(name)
        parsed = {
            str(item): Decimal(str(amount))
            for item, amount in (items or {}).items()
            if amount is not None
        }
        sections.append(DeclarationSection(section=key, items=parsed))
    return tuple(sections)


# -----------------------------------------------------------------------------
# Lifecycle
# -----------------------------------------------------------------------------


def _transition(declaration: TaxDeclaration, action: str, **changes) -> TaxDeclaration:
    new_state = TAX_DECLARATION_WORKFLOW.next_state(declaration.status.value, action)
    logger.info(
        "tax_declaration_transition",
        extra={
            "declaration_id": declaration.id,
            "employee_id": declaration.employee_id,
            "action": action,
            "from_state": declaration.status.value,
            "to_state": new_state,
        },
    )
    return replace(declaration, status=DeclarationStatus(new_state), **changes)


def submit_declaration(declaration: TaxDeclaration) -> TaxDeclaration:
    return _transition(declaration, "submit")


def verify_declaration(
    declaration: TaxDeclaration, verified_amount: Decimal | None = None,
) -> TaxDeclaration:
    """Verify a submitted declaration, optionally with an overall ceiling."""
    if verified_amount is not None and verified_amount < _ZERO:
        raise InvalidConfigurationValueError(
            "verified_amount", verified_amount, "must not be negative"
        )
    return _transition(declaration, "verify", verified_amount=verified_amount)


def reject_declaration(declaration: TaxDeclaration) -> TaxDeclaration:
    return _transition(declaration, "reject")


def revise_declaration(declaration: TaxDeclaration) -> TaxDeclaration:
    return _transition(declaration, "revise", verified_amount=None)


# -----------------------------------------------------------------------------
# Capping
# -----------------------------------------------------------------------------


def _same_year(declaration: TaxDeclaration, config: TaxConfiguration) -> bool:
    try:
        declared = FinancialYear.parse(declaration.financial_year)
    except InvalidConfigurationValueError:
        return False
    return declared.start_year == config.fiscal_year.start_year


def capped_declared_exemptions(
    declarations: Iterable[TaxDeclaration],
    config: TaxConfiguration,
) -> DeclaredExemptions:
    """
    Annual exemption the declarations earn under ``config``.

    Verified declarations of the configuration's financial year are summed
    per section, each section is capped by ``config.section_cap``, and the
    total is capped by the sum of ``verified_amount`` when every counted
    declaration carries one.
    """
    counted = [
        d for d in declarations
        if d.status == DeclarationStatus.VERIFIED and _same_year(d, config)
    ]
    if not counted:
        return DeclaredExemptions(by_section={}, total=_ZERO)

    declared: dict[SectionKey, Decimal] = {}
    for declaration in counted:
        for section in declaration.sections:
            declared[section.section] = declared.get(section.section, _ZERO) + section.total

    by_section: dict[SectionKey, Decimal] = {}
    for section, amount in declared.items():
        cap = config.section_cap(section)
        if cap is None:
            logger.warning(
                "declaration_section_without_cap",
                extra={"section": section.value, "declared": str(amount)},
            )
            by_section[section] = _ZERO
        else:
            by_section[section] = min(amount, cap)

    total = sum(by_section.values(), _ZERO)

    ceilings = [d.verified_amount for d in counted]
    if all(c is not None for c in ceilings):
        total = min(total, sum(ceilings, _ZERO))

    return DeclaredExemptions(by_section=by_section, total=total)
