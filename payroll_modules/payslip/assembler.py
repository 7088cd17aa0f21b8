"""
Module: payroll_modules.payslip.assembler
Responsibility: Compute one employee's payslip for one pay period from a
    TaxConfiguration, the employee's salary assignment, declarations and
    adjustments.
Architecture position: Modules > Payslip.  Pure computation; the only
    injected dependency is the Clock that stamps ``generated_at``.  Called
    from worker threads by the run processor, so it holds no mutable state.

Calculation order:
    1. Resolve salary components in priority order.
    2. Add the period's adjustment earnings (variable pay, arrears,
       reimbursements).  Gross = sum of rounded earning lines.
    3. Statutory contributions (social security, health insurance) and
       professional tax from the configuration.
    4. Allowance exemptions, standard deduction share and declared
       exemption share.
    5. Taxable income = taxable earnings - professional tax - exemptions,
       floored at zero.  TDS from the income tax slabs under the
       configuration's normalization policy.
    6. Loan repayments and other policy deductions.
    7. Every line rounded to the currency's minor unit; totals are sums of
       rounded lines; the result is reconciled before it is returned.

Invariants enforced:
    - net_salary == gross_salary - total_deductions exactly.
    - taxable_earnings - professional tax == taxable_income + exemptions
      (within currency tolerance) unless taxable income was floored.
    - net_salary is never negative.

Failure modes:
    - MissingSalaryStructureError: employee has no salary assignment.
    - UnresolvedComponentBaseError: percentage base not yet resolved.
    - PayslipReconciliationError: a reconciliation check fails.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID, uuid4

from payroll_config.schema import TaxConfiguration, TdsNormalization
from payroll_engines.contributions import (
    ContributionBase,
    ContributionResult,
    ContributionScheme,
    calculate_contribution,
)
from payroll_engines.exemptions import evaluate_housing_exemption, evaluate_travel_exemption
from payroll_engines.slabs import evaluate_flat, evaluate_marginal
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.currency import CurrencyRegistry
from payroll_kernel.domain.values import Money
from payroll_kernel.exceptions import (
    MissingSalaryStructureError,
    PayslipReconciliationError,
)
from payroll_kernel.logging_config import get_logger
from payroll_modules.adjustments import EmployeeAdjustments
from payroll_modules.declarations import TaxDeclaration, capped_declared_exemptions
from payroll_modules.payslip.models import (
    ExemptionSummary,
    PayPeriod,
    Payslip,
    PayslipLine,
)
from payroll_modules.salary import (
    ComponentCategory,
    SalaryAssignment,
    resolve_components,
)

logger = get_logger("modules.payslip.assembler")

_ZERO = Decimal("0")


@dataclass(frozen=True)
class EmployeePayrollInput:
    """Everything the assembler needs about one employee for one period."""

    employee_id: str
    company_id: str
    salary: SalaryAssignment | None
    employee_code: str | None = None
    country: str | None = None
    state: str | None = None
    declarations: tuple[TaxDeclaration, ...] = ()
    adjustments: EmployeeAdjustments = field(default_factory=EmployeeAdjustments)
    rent_paid: Decimal | None = None
    travel_expense: Decimal | None = None

    @property
    def display_code(self) -> str:
        return self.employee_code or self.employee_id


def payslip_number(period: PayPeriod, employee: EmployeePayrollInput) -> str:
    return f"PS-{period.year}{period.month:02d}-{employee.display_code}"


def _sum(lines: list[PayslipLine] | tuple[PayslipLine, ...], currency: str) -> Money:
    return sum((Money.of(line.amount, currency) for line in lines), Money.zero(currency))


class PayslipAssembler:
    """
    Pure payslip calculator.

    ``assemble`` is deterministic for identical inputs apart from the
    payslip ``id`` and ``generated_at``; ``Payslip.financial_signature``
    compares equal.
    """

    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()

    def assemble(
        self,
        config: TaxConfiguration,
        employee: EmployeePayrollInput,
        period: PayPeriod,
        payroll_run_id: UUID | None = None,
    ) -> Payslip:
        start = time.monotonic()
        if employee.salary is None:
            raise MissingSalaryStructureError(employee.employee_id)

        currency = config.currency
        periods = Decimal(config.pay_periods_per_year)

        def rnd(amount: Decimal) -> Decimal:
            return Money.of(amount, currency).round().amount

        def per_period(annual: Decimal) -> Decimal:
            return (Money.of(annual, currency) / periods).round().amount

        # 1-2. Earnings
        earnings: list[PayslipLine] = []
        policy_deductions: list[PayslipLine] = []
        for component in resolve_components(employee.salary, config.pay_periods_per_year):
            line = PayslipLine(
                name=component.name,
                category=component.category,
                amount=rnd(component.amount),
                is_taxable=component.is_taxable,
                is_statutory=component.is_statutory,
            )
            (earnings if component.is_earning else policy_deductions).append(line)

        for line in employee.adjustments.earning_lines(period):
            earnings.append(_rounded(line, rnd))

        gross_money = _sum(earnings, currency)
        gross = gross_money.amount
        taxable_earnings = _sum([e for e in earnings if e.is_taxable], currency).amount
        basic = _sum(
            [e for e in earnings if e.category == ComponentCategory.BASIC], currency,
        ).amount
        housing_allowance = _sum([
            e for e in earnings
            if e.category == ComponentCategory.HOUSING_ALLOWANCE and e.is_taxable
        ], currency).amount
        travel_allowance = _sum([
            e for e in earnings
            if e.category == ComponentCategory.TRAVEL_ALLOWANCE and e.is_taxable
        ], currency).amount

        # 3. Statutory contributions and professional tax
        statutory: list[PayslipLine] = []

        social = self._contribution(config.social_security, basic, gross)
        if social is not None:
            statutory.append(PayslipLine(
                "Social Security", ComponentCategory.PROVIDENT_FUND,
                rnd(social.employee_amount), is_taxable=False, is_statutory=True,
            ))
        health = self._contribution(config.health_insurance, basic, gross)
        if health is not None:
            statutory.append(PayslipLine(
                "Health Insurance", ComponentCategory.HEALTH_INSURANCE,
                rnd(health.employee_amount), is_taxable=False, is_statutory=True,
            ))

        professional_tax: Decimal | None = None
        if config.professional_tax_enabled:
            professional_tax = rnd(evaluate_flat(config.professional_tax_slabs, gross))
            statutory.append(PayslipLine(
                "Professional Tax", ComponentCategory.PROFESSIONAL_TAX,
                professional_tax, is_taxable=False, is_statutory=True,
            ))

        # 4. Exemptions
        housing_exemption = _ZERO
        if config.housing_allowance_exemption is not None and housing_allowance > _ZERO:
            housing_exemption = rnd(evaluate_housing_exemption(
                config.housing_allowance_exemption,
                allowance=housing_allowance,
                basic=basic,
                rent_paid=employee.rent_paid,
            ))
        travel_exemption = _ZERO
        if config.travel_allowance_exemption is not None and travel_allowance > _ZERO:
            travel_exemption = rnd(evaluate_travel_exemption(
                config.travel_allowance_exemption,
                allowance=travel_allowance,
                basic=basic,
                expense_incurred=employee.travel_expense,
            ))
        declared = capped_declared_exemptions(employee.declarations, config)
        exemptions = ExemptionSummary(
            housing=housing_exemption,
            travel=travel_exemption,
            standard_deduction=per_period(config.standard_deduction),
            declared=per_period(declared.total),
        )

        # 5. Taxable income and TDS
        pre_tax = professional_tax or _ZERO
        taxable_income = max(taxable_earnings - pre_tax - exemptions.total, _ZERO)
        annual_taxable_income = (Money.of(taxable_income, currency) * periods).amount

        tds = _ZERO
        if config.income_tax_enabled:
            if config.tds_normalization == TdsNormalization.ANNUALIZED:
                tds = per_period(evaluate_marginal(config.income_tax_slabs, annual_taxable_income))
            else:
                annual_taxable_income = taxable_income
                tds = rnd(evaluate_marginal(config.income_tax_slabs, taxable_income))
            statutory.insert(0, PayslipLine(
                "Income Tax (TDS)", ComponentCategory.INCOME_TAX,
                tds, is_taxable=False, is_statutory=True,
            ))

        # 6. Policy deductions
        for line in employee.adjustments.deduction_lines(period):
            policy_deductions.append(_rounded(line, rnd))

        deductions = tuple(statutory + policy_deductions)
        deductions_money = _sum(deductions, currency)
        total_deductions = deductions_money.amount
        net = (gross_money - deductions_money).amount

        payslip = Payslip(
            id=uuid4(),
            payslip_number=payslip_number(period, employee),
            payroll_run_id=payroll_run_id,
            employee_id=employee.employee_id,
            company_id=employee.company_id,
            month=period.month,
            year=period.year,
            financial_year=config.financial_year,
            currency=currency,
            ctc=employee.salary.ctc,
            gross_salary=gross,
            total_deductions=total_deductions,
            net_salary=net,
            taxable_earnings=taxable_earnings,
            taxable_income=taxable_income,
            annual_taxable_income=annual_taxable_income,
            tds_amount=tds,
            professional_tax_amount=professional_tax,
            social_security_employee=rnd(social.employee_amount) if social else None,
            social_security_employer=rnd(social.employer_amount) if social else None,
            health_insurance_employee=rnd(health.employee_amount) if health else None,
            health_insurance_employer=rnd(health.employer_amount) if health else None,
            exemptions=exemptions,
            earnings=tuple(earnings),
            deductions=deductions,
            config_checksum=config.checksum,
            generated_at=self._clock.now(),
        )

        reconcile_payslip(payslip)

        logger.info(
            "payslip_assembled",
            extra={
                "employee_id": employee.employee_id,
                "period": period.label,
                "gross_salary": str(gross),
                "total_deductions": str(total_deductions),
                "net_salary": str(net),
                "tds_amount": str(tds),
                "duration_ms": round((time.monotonic() - start) * 1000, 2),
            },
        )
        return payslip

    @staticmethod
    def _contribution(
        scheme: ContributionScheme, basic: Decimal, gross: Decimal,
    ) -> ContributionResult | None:
        base = basic if scheme.base == ContributionBase.BASIC else gross
        return calculate_contribution(scheme, base)


def _rounded(line: PayslipLine, rnd) -> PayslipLine:
    return PayslipLine(
        name=line.name,
        category=line.category,
        amount=rnd(line.amount),
        is_taxable=line.is_taxable,
        is_statutory=line.is_statutory,
    )


def reconcile_payslip(payslip: Payslip) -> None:
    """
    Check a payslip's totals against its lines.

    Raises:
        PayslipReconciliationError: The first failing check.
    """
    tolerance = CurrencyRegistry.get_rounding_tolerance(payslip.currency)

    def fail(check: str, expected: Decimal, actual: Decimal) -> None:
        logger.error(
            "payslip_reconciliation_failed",
            extra={
                "employee_id": payslip.employee_id,
                "check": check,
                "expected": str(expected),
                "actual": str(actual),
            },
        )
        raise PayslipReconciliationError(payslip.employee_id, check, expected, actual)

    earnings_total = _sum(payslip.earnings, payslip.currency).amount
    if earnings_total != payslip.gross_salary:
        fail("gross_equals_earnings", earnings_total, payslip.gross_salary)

    deductions_total = _sum(payslip.deductions, payslip.currency).amount
    if deductions_total != payslip.total_deductions:
        fail("deductions_equal_lines", deductions_total, payslip.total_deductions)

    expected_net = (
        Money.of(payslip.gross_salary, payslip.currency)
        - Money.of(payslip.total_deductions, payslip.currency)
    ).amount
    if expected_net != payslip.net_salary:
        fail("net_equals_gross_minus_deductions", expected_net, payslip.net_salary)

    for line in payslip.earnings + payslip.deductions:
        if line.amount < _ZERO:
            fail(f"line_non_negative:{line.name}", _ZERO, line.amount)

    left = payslip.taxable_earnings - (payslip.professional_tax_amount or _ZERO)
    right = payslip.taxable_income + payslip.exemptions.total
    if payslip.taxable_income > _ZERO:
        if abs(left - right) > tolerance:
            fail("taxable_income_reconciles", left, right)
    elif left > right + tolerance:
        fail("taxable_income_reconciles", left, right)

    if payslip.net_salary < _ZERO:
        fail("net_salary_non_negative", _ZERO, payslip.net_salary)
