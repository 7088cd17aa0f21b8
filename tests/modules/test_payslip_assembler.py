"""
Tests for the PayslipAssembler.

Covers:
- Income-tax-only payslip (annualized TDS)
- Every statutory feature enabled: contributions, professional tax,
  housing exemption, standard deduction and declared exemptions
- Per-period TDS normalization
- Adjustments flowing into earnings and deductions
- Disabled features omitted rather than zeroed
- Reconciliation checks
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from payroll_config.schema import TdsNormalization
from payroll_kernel.exceptions import (
    MissingSalaryStructureError,
    PayslipReconciliationError,
)
from payroll_modules.adjustments import EmployeeAdjustments, Loan, VariablePay
from payroll_modules.declarations import DeclarationStatus, TaxDeclaration, parse_declaration_sections
from payroll_modules.payslip import PayPeriod, PayslipLine, PayslipStatus
from payroll_modules.payslip.assembler import PayslipAssembler, reconcile_payslip
from payroll_modules.salary import ComponentCategory
from tests.builders import fixed, make_config, make_employee, make_full_config, percent

PERIOD = PayPeriod(2024, 6)

STANDARD_COMPONENTS = (
    fixed("Basic", ComponentCategory.BASIC, "20000", priority=1),
    percent("HRA", ComponentCategory.HOUSING_ALLOWANCE, "50", "basic", priority=2),
    fixed("Special", ComponentCategory.SPECIAL_ALLOWANCE, "20000", priority=3),
)


def _line(payslip, name):
    for line in payslip.earnings + payslip.deductions:
        if line.name == name:
            return line
    raise AssertionError(f"no line named {name}")


class TestIncomeTaxOnly:
    """A single taxable basic line of 50000 a month."""

    def setup_method(self):
        self.assembler = PayslipAssembler()
        self.payslip = self.assembler.assemble(make_config(), make_employee(), PERIOD)

    def test_monthly_tds_from_annualized_income(self):
        """600000 annual -> 42500 tax -> 3541.67 per month."""
        assert self.payslip.annual_taxable_income == Decimal("600000")
        assert self.payslip.tds_amount == Decimal("3541.67")

    def test_totals(self):
        assert self.payslip.gross_salary == Decimal("50000.00")
        assert self.payslip.total_deductions == Decimal("3541.67")
        assert self.payslip.net_salary == Decimal("46458.33")

    def test_tds_line_present(self):
        line = _line(self.payslip, "Income Tax (TDS)")
        assert line.category == ComponentCategory.INCOME_TAX
        assert line.is_statutory

    def test_disabled_schemes_are_none(self):
        assert self.payslip.social_security_employee is None
        assert self.payslip.health_insurance_employer is None
        assert self.payslip.professional_tax_amount is None
        assert [d.name for d in self.payslip.deductions] == ["Income Tax (TDS)"]

    def test_identity_fields(self):
        assert self.payslip.payslip_number == "PS-202406-EMP-1"
        assert self.payslip.financial_year == "2024-25"
        assert self.payslip.config_checksum == "test-checksum"
        assert self.payslip.status == PayslipStatus.GENERATED

    def test_financial_signature_is_deterministic(self):
        again = self.assembler.assemble(make_config(), make_employee(), PERIOD)
        assert again.id != self.payslip.id
        assert again.financial_signature() == self.payslip.financial_signature()


class TestFullStatutoryConfiguration:
    """Basic 20000, HRA 10000, Special 20000, rent 8000."""

    def setup_method(self):
        self.config = make_full_config()
        self.employee = make_employee(
            components=STANDARD_COMPONENTS, rent_paid=Decimal("8000"),
        )
        self.payslip = PayslipAssembler().assemble(self.config, self.employee, PERIOD)

    def test_gross(self):
        assert self.payslip.gross_salary == Decimal("50000.00")
        assert _line(self.payslip, "HRA").amount == Decimal("10000.00")

    def test_social_security_capped_on_basic(self):
        assert self.payslip.social_security_employee == Decimal("1800.00")
        assert self.payslip.social_security_employer == Decimal("1800.00")

    def test_health_insurance_capped_on_gross(self):
        assert self.payslip.health_insurance_employee == Decimal("157.50")
        assert self.payslip.health_insurance_employer == Decimal("682.50")

    def test_professional_tax_from_gross(self):
        assert self.payslip.professional_tax_amount == Decimal("200.00")

    def test_exemptions(self):
        exemptions = self.payslip.exemptions
        assert exemptions.housing == Decimal("6000.00")
        assert exemptions.travel == Decimal("0")
        assert exemptions.standard_deduction == Decimal("4166.67")
        assert exemptions.declared == Decimal("0.00")

    def test_taxable_income_and_tds(self):
        assert self.payslip.taxable_income == Decimal("39633.33")
        assert self.payslip.tds_amount == Decimal("940.00")

    def test_totals_and_order(self):
        assert [d.name for d in self.payslip.deductions] == [
            "Income Tax (TDS)", "Social Security", "Health Insurance", "Professional Tax",
        ]
        assert self.payslip.total_deductions == Decimal("3097.50")
        assert self.payslip.net_salary == Decimal("46902.50")

    def test_cost_to_company(self):
        assert self.payslip.employer_contributions == Decimal("2482.50")
        assert self.payslip.cost_to_company == Decimal("52482.50")

    def test_verified_declaration_reduces_tds(self):
        declaration = TaxDeclaration(
            employee_id="emp-1",
            financial_year="2024-25",
            sections=parse_declaration_sections({"section80C": {"ppf": 100000, "elss": 80000}}),
            status=DeclarationStatus.VERIFIED,
        )
        employee = replace(self.employee, declarations=(declaration,))
        payslip = PayslipAssembler().assemble(self.config, employee, PERIOD)

        assert payslip.exemptions.declared == Decimal("12500.00")
        assert payslip.taxable_income == Decimal("27133.33")
        assert payslip.tds_amount == Decimal("315.00")

    def test_missing_rent_means_no_housing_exemption(self):
        employee = replace(self.employee, rent_paid=None)
        payslip = PayslipAssembler().assemble(self.config, employee, PERIOD)
        assert payslip.exemptions.housing == Decimal("0")


class TestNormalization:

    def test_per_period_applies_slabs_to_period_income(self):
        config = make_config(tds_normalization=TdsNormalization.PER_PERIOD)
        payslip = PayslipAssembler().assemble(config, make_employee(), PERIOD)

        assert payslip.annual_taxable_income == payslip.taxable_income
        assert payslip.tds_amount == Decimal("0.00")

    def test_income_tax_disabled(self):
        config = make_config(income_tax_enabled=False, income_tax_slabs=())
        payslip = PayslipAssembler().assemble(config, make_employee(), PERIOD)

        assert payslip.tds_amount == Decimal("0")
        assert payslip.deductions == ()
        assert payslip.net_salary == payslip.gross_salary

    def test_zero_decimal_currency_totals(self):
        """50000 a year standard deduction is 4167 a month in whole yen."""
        config = make_config(currency="JPY", standard_deduction=Decimal("50000"))
        payslip = PayslipAssembler().assemble(config, make_employee(), PERIOD)

        assert payslip.exemptions.standard_deduction == Decimal("4167")
        assert payslip.taxable_income == Decimal("45833")
        assert payslip.annual_taxable_income == Decimal("549996")
        assert payslip.tds_amount == payslip.tds_amount.quantize(Decimal("1"))
        assert payslip.net_salary == payslip.gross_salary - payslip.total_deductions


class TestAdjustments:

    def test_variable_pay_and_loan(self):
        adjustments = EmployeeAdjustments(
            variable_pay=(VariablePay("bonus", Decimal("6000"), 6, 2024, is_approved=True),),
            loans=(Loan(
                loan_type="personal",
                principal=Decimal("12000"),
                interest_rate=Decimal("0"),
                tenure_months=12,
                deduction_start_month=1,
                deduction_start_year=2024,
                remaining_balance=Decimal("12000"),
            ),),
        )
        payslip = PayslipAssembler().assemble(
            make_config(), make_employee(adjustments=adjustments), PERIOD,
        )

        assert payslip.gross_salary == Decimal("56000.00")
        assert payslip.taxable_earnings == Decimal("56000.00")
        assert _line(payslip, "Personal Repayment").amount == Decimal("1000.00")
        assert payslip.net_salary == payslip.gross_salary - payslip.total_deductions

    def test_non_taxable_component_excluded_from_taxable_earnings(self):
        components = (
            fixed("Basic", ComponentCategory.BASIC, "50000"),
            fixed("Meal Card", ComponentCategory.OTHER, "2200", is_taxable=False),
        )
        payslip = PayslipAssembler().assemble(
            make_config(), make_employee(components=components), PERIOD,
        )
        assert payslip.gross_salary == Decimal("52200.00")
        assert payslip.taxable_earnings == Decimal("50000.00")
        assert payslip.tds_amount == Decimal("3541.67")


class TestFailures:

    def test_missing_salary_structure(self):
        with pytest.raises(MissingSalaryStructureError):
            PayslipAssembler().assemble(make_config(), make_employee(salary=None), PERIOD)

    def test_deductions_exceeding_gross(self):
        components = (
            fixed("Basic", ComponentCategory.BASIC, "1000"),
        )
        adjustments = EmployeeAdjustments(loans=(Loan(
            loan_type="personal",
            principal=Decimal("50000"),
            interest_rate=Decimal("0"),
            tenure_months=1,
            deduction_start_month=1,
            deduction_start_year=2024,
            remaining_balance=Decimal("50000"),
        ),))
        employee = make_employee(components=components, adjustments=adjustments)

        with pytest.raises(PayslipReconciliationError) as exc_info:
            PayslipAssembler().assemble(make_config(), employee, PERIOD)
        assert exc_info.value.check == "net_salary_non_negative"


class TestReconcilePayslip:
    """Tampered payslips fail the named check."""

    def setup_method(self):
        self.payslip = PayslipAssembler().assemble(make_config(), make_employee(), PERIOD)

    def test_consistent_payslip_passes(self):
        reconcile_payslip(self.payslip)

    def test_gross_mismatch(self):
        bad = replace(self.payslip, gross_salary=Decimal("1"))
        with pytest.raises(PayslipReconciliationError, match="gross_equals_earnings"):
            reconcile_payslip(bad)

    def test_net_mismatch(self):
        bad = replace(self.payslip, net_salary=self.payslip.net_salary + Decimal("0.01"))
        with pytest.raises(PayslipReconciliationError, match="net_equals_gross"):
            reconcile_payslip(bad)

    def test_negative_line(self):
        line = PayslipLine("Refund", ComponentCategory.OTHER, Decimal("-10"))
        earnings = self.payslip.earnings + (line,)
        bad = replace(
            self.payslip,
            earnings=earnings,
            gross_salary=self.payslip.gross_salary - Decimal("10"),
            net_salary=self.payslip.net_salary - Decimal("10"),
        )
        with pytest.raises(PayslipReconciliationError, match="line_non_negative:Refund"):
            reconcile_payslip(bad)

    def test_taxable_income_mismatch(self):
        bad = replace(self.payslip, taxable_income=self.payslip.taxable_income - Decimal("5"))
        with pytest.raises(PayslipReconciliationError, match="taxable_income_reconciles"):
            reconcile_payslip(bad)
