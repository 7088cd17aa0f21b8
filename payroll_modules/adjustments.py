"""
Payroll Adjustments (``payroll_modules.adjustments``).

Responsibility
--------------
Per-month additions to and deductions from the salary structure:
variable pay, arrears, reimbursements and loan repayments.  Each source
is filtered to the pay period and turned into unrounded payslip lines.

Architecture position
---------------------
**Modules layer** -- frozen value objects and pure functions.  Consumed by
the payslip assembler.

Invariants enforced
-------------------
* Variable pay counts only once approved.
* Reimbursements count only when approved or paid, at the approved amount
  when one is set.
* A taxable reimbursement is taxable only above its exemption limit.
* A loan deducts only while active, from its deduction start period on,
  and never more than its remaining balance.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from payroll_engines.loans import calculate_emi
from payroll_kernel.exceptions import InvalidConfigurationValueError
from payroll_kernel.logging_config import get_logger
from payroll_modules.payslip.models import PayPeriod, PayslipLine
from payroll_modules.salary import ComponentCategory

logger = get_logger("modules.adjustments")

_ZERO = Decimal("0")


def _label(kind: str) -> str:
    return kind.replace("_", " ").strip().title()


def _non_negative(field_name: str, value: Decimal | None) -> None:
    if value is not None and value < _ZERO:
        raise InvalidConfigurationValueError(field_name, value, "must not be negative")


# -----------------------------------------------------------------------------
# Variable pay and arrears
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class VariablePay:
    pay_type: str  # bonus, incentive, commission, overtime, ...
    amount: Decimal
    month: int
    year: int
    is_taxable: bool = True
    is_approved: bool = False
    id: str | None = None
    description: str | None = None

    def __post_init__(self):
        _non_negative("variable_pay.amount", self.amount)


@dataclass(frozen=True)
class Arrears:
    arrears_type: str  # salary_revision, missed_component, ...
    amount: Decimal
    month: int
    year: int
    is_taxable: bool = True
    id: str | None = None

    def __post_init__(self):
        _non_negative("arrears.amount", self.amount)


# -----------------------------------------------------------------------------
# Reimbursements
# -----------------------------------------------------------------------------


class ReimbursementStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"


_PAYABLE_REIMBURSEMENTS = frozenset({ReimbursementStatus.APPROVED, ReimbursementStatus.PAID})


@dataclass(frozen=True)
class Reimbursement:
    reimbursement_type: str
    claim_amount: Decimal
    month: int
    year: int
    status: ReimbursementStatus = ReimbursementStatus.DRAFT
    approved_amount: Decimal | None = None
    is_taxable: bool = False
    tax_exemption_limit: Decimal | None = None
    id: str | None = None

    def __post_init__(self):
        _non_negative("reimbursement.claim_amount", self.claim_amount)
        _non_negative("reimbursement.approved_amount", self.approved_amount)
        _non_negative("reimbursement.tax_exemption_limit", self.tax_exemption_limit)

    @property
    def payable_amount(self) -> Decimal:
        return self.approved_amount if self.approved_amount is not None else self.claim_amount

    def split(self) -> tuple[Decimal, Decimal]:
        """(exempt, taxable) parts of the payable amount."""
        amount = self.payable_amount
        if not self.is_taxable:
            return amount, _ZERO
        limit = self.tax_exemption_limit or _ZERO
        taxable = max(amount - limit, _ZERO)
        return amount - taxable, taxable


# -----------------------------------------------------------------------------
# Loans
# -----------------------------------------------------------------------------


class LoanStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CLOSED = "closed"


@dataclass(frozen=True)
class Loan:
    """
    An employee loan or salary advance.

    When ``emi_amount`` is not given it is derived from the principal, the
    annual interest rate and the tenure.
    """

    loan_type: str
    principal: Decimal
    interest_rate: Decimal
    tenure_months: int
    deduction_start_month: int
    deduction_start_year: int
    remaining_balance: Decimal
    emi_amount: Decimal | None = None
    status: LoanStatus = LoanStatus.ACTIVE
    name: str | None = None
    id: str | None = None

    def __post_init__(self):
        _non_negative("loan.remaining_balance", self.remaining_balance)
        _non_negative("loan.emi_amount", self.emi_amount)

    @property
    def emi(self) -> Decimal:
        if self.emi_amount is not None:
            return self.emi_amount
        return calculate_emi(self.principal, self.interest_rate, self.tenure_months)

    def deduction_for(self, period: PayPeriod) -> Decimal:
        if self.status != LoanStatus.ACTIVE or self.remaining_balance <= _ZERO:
            return _ZERO
        if not period.reached(self.deduction_start_month, self.deduction_start_year):
            return _ZERO
        return min(self.emi, self.remaining_balance)


# -----------------------------------------------------------------------------
# Aggregate
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class EmployeeAdjustments:
    variable_pay: tuple[VariablePay, ...] = ()
    arrears: tuple[Arrears, ...] = ()
    reimbursements: tuple[Reimbursement, ...] = ()
    loans: tuple[Loan, ...] = ()

    def earning_lines(self, period: PayPeriod) -> tuple[PayslipLine, ...]:
        """Unrounded earning lines the adjustments contribute to ``period``."""
        lines: list[PayslipLine] = []

        for vp in self.variable_pay:
            if (vp.month, vp.year) != (period.month, period.year):
                continue
            if not vp.is_approved:
                logger.debug(
                    "variable_pay_not_approved",
                    extra={"variable_pay_id": vp.id, "pay_type": vp.pay_type},
                )
                continue
            lines.append(
                PayslipLine(
                    name=_label(vp.pay_type),
                    category=ComponentCategory.VARIABLE_PAY,
                    amount=vp.amount,
                    is_taxable=vp.is_taxable,
                )
            )

        for arrears in self.arrears:
            if (arrears.month, arrears.year) != (period.month, period.year):
                continue
            lines.append(
                PayslipLine(
                    name=f"Arrears ({_label(arrears.arrears_type)})",
                    category=ComponentCategory.ARREARS,
                    amount=arrears.amount,
                    is_taxable=arrears.is_taxable,
                )
            )

        for claim in self.reimbursements:
            if (claim.month, claim.year) != (period.month, period.year):
                continue
            if claim.status not in _PAYABLE_REIMBURSEMENTS:
                continue
            exempt, taxable = claim.split()
            name = f"Reimbursement ({_label(claim.reimbursement_type)})"
            if exempt > _ZERO:
                lines.append(
                    PayslipLine(name, ComponentCategory.REIMBURSEMENT, exempt, is_taxable=False)
                )
            if taxable > _ZERO:
                lines.append(
                    PayslipLine(
                        f"{name} taxable",
                        ComponentCategory.REIMBURSEMENT,
                        taxable,
                        is_taxable=True,
                    )
                )

        return tuple(lines)

    def deduction_lines(self, period: PayPeriod) -> tuple[PayslipLine, ...]:
        """Loan repayments due in ``period``."""
        lines = []
        for loan in self.loans:
            amount = loan.deduction_for(period)
            if amount <= _ZERO:
                continue
            category = (
                ComponentCategory.ADVANCE
                if loan.loan_type.strip().lower() in ("advance", "salary_advance")
                else ComponentCategory.LOAN
            )
            lines.append(
                PayslipLine(
                    name=loan.name or f"{_label(loan.loan_type)} Repayment",
                    category=category,
                    amount=amount,
                    is_taxable=False,
                )
            )
        return tuple(lines)
