"""
Record mapping for run inputs.

Turns backend JSON records (camelCase) and local YAML fixtures
(snake_case) into payroll domain objects.  Every reader accepts both key
styles: ``componentName`` and ``component_name`` name the same field.
Amounts pass through ``parse_decimal`` so floats never reach a Decimal
field unconverted.
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any, Mapping

from payroll_config.loader import parse_decimal
from payroll_kernel.exceptions import InvalidConfigurationValueError
from payroll_modules.adjustments import (
    Arrears,
    EmployeeAdjustments,
    Loan,
    LoanStatus,
    Reimbursement,
    ReimbursementStatus,
    VariablePay,
)
from payroll_modules.declarations import (
    DeclarationStatus,
    TaxDeclaration,
    parse_declaration_sections,
)
from payroll_modules.payslip.assembler import EmployeePayrollInput
from payroll_modules.salary import (
    ComponentCategory,
    ComponentType,
    SalaryAssignment,
    SalaryComponent,
    SalaryStructure,
)

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")

_MISSING = object()


def _snake(name: str) -> str:
    return _CAMEL.sub("_", name).lower()


def _get(data: Mapping[str, Any], key: str, default: Any = None) -> Any:
    """Read ``key`` (camelCase) or its snake_case form."""
    value = data.get(key, _MISSING)
    if value is _MISSING:
        value = data.get(_snake(key), _MISSING)
    return default if value is _MISSING else value


def _require(data: Mapping[str, Any], key: str, record: str) -> Any:
    value = _get(data, key)
    if value is None:
        raise InvalidConfigurationValueError(f"{record}.{key}", None, "is required")
    return value


def _decimal(data: Mapping[str, Any], key: str, record: str) -> Decimal:
    return parse_decimal(_require(data, key, record), f"{record}.{key}")


def _optional(data: Mapping[str, Any], key: str, record: str) -> Decimal | None:
    value = _get(data, key)
    return None if value is None else parse_decimal(value, f"{record}.{key}")


def _int(data: Mapping[str, Any], key: str, record: str) -> int:
    value = _require(data, key, record)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidConfigurationValueError(f"{record}.{key}", value, "expected an integer") from None


def _enum(enum_cls, value: Any, field: str):
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        raise InvalidConfigurationValueError(field, value, f"unknown {enum_cls.__name__}") from None


# ---------------------------------------------------------------------------
# Salary
# ---------------------------------------------------------------------------


def parse_salary_component(data: Mapping[str, Any]) -> SalaryComponent:
    name = str(_require(data, "componentName", "component"))
    record = f"component.{name}"
    return SalaryComponent(
        name=name,
        component_type=_enum(ComponentType, _require(data, "componentType", record), f"{record}.componentType"),
        category=ComponentCategory.parse(_get(data, "componentCategory")),
        value=_decimal(data, "value", record),
        is_percentage=bool(_get(data, "isPercentage", False)),
        percentage_of=_get(data, "percentageOf"),
        is_taxable=bool(_get(data, "isTaxable", True)),
        is_statutory=bool(_get(data, "isStatutory", False)),
        priority=int(_get(data, "priority", 0) or 0),
        is_active=bool(_get(data, "isActive", True)),
    )


def parse_salary_structure(data: Mapping[str, Any]) -> SalaryStructure:
    return SalaryStructure(
        id=_get(data, "id"),
        company_id=str(_get(data, "companyId", "")),
        name=str(_get(data, "name", _get(data, "structureName", ""))),
        components=tuple(parse_salary_component(c) for c in _get(data, "components", []) or []),
        is_active=bool(_get(data, "isActive", True)),
    )


def parse_salary_assignment(data: Mapping[str, Any] | None) -> SalaryAssignment | None:
    """
    Parse an assigned structure.

    Accepts either ``{ctc, salaryStructure: {...}}`` or a structure record
    carrying ``ctc`` at its top level.  ``None`` means no assignment.
    """
    if not data:
        return None
    nested = _get(data, "salaryStructure")
    structure = parse_salary_structure(nested if nested is not None else data)
    return SalaryAssignment(structure=structure, ctc=_decimal(data, "ctc", "salary_assignment"))


# ---------------------------------------------------------------------------
# Declarations and adjustments
# ---------------------------------------------------------------------------


def parse_tax_declaration(data: Mapping[str, Any]) -> TaxDeclaration:
    return TaxDeclaration(
        id=_get(data, "id"),
        employee_id=str(_require(data, "employeeId", "tax_declaration")),
        company_id=_get(data, "companyId"),
        financial_year=str(_require(data, "financialYear", "tax_declaration")),
        sections=parse_declaration_sections(_get(data, "declarations", {})),
        status=_enum(DeclarationStatus, _get(data, "status", "draft"), "tax_declaration.status"),
        verified_amount=_optional(data, "verifiedAmount", "tax_declaration"),
    )


def parse_variable_pay(data: Mapping[str, Any]) -> VariablePay:
    return VariablePay(
        id=_get(data, "id"),
        pay_type=str(_get(data, "variablePayType", "variable_pay")),
        amount=_decimal(data, "amount", "variable_pay"),
        month=_int(data, "applicableMonth", "variable_pay"),
        year=_int(data, "applicableYear", "variable_pay"),
        is_taxable=bool(_get(data, "isTaxable", True)),
        is_approved=bool(_get(data, "isApproved", False)),
        description=_get(data, "description"),
    )


def parse_arrears(data: Mapping[str, Any]) -> Arrears:
    return Arrears(
        id=_get(data, "id"),
        arrears_type=str(_get(data, "arrearsType", "arrears")),
        amount=_decimal(data, "adjustmentAmount", "arrears"),
        month=_int(data, "applicableMonth", "arrears"),
        year=_int(data, "applicableYear", "arrears"),
        is_taxable=bool(_get(data, "isTaxable", True)),
    )


def parse_reimbursement(data: Mapping[str, Any]) -> Reimbursement:
    return Reimbursement(
        id=_get(data, "id"),
        reimbursement_type=str(_get(data, "reimbursementType", "reimbursement")),
        claim_amount=_decimal(data, "claimAmount", "reimbursement"),
        approved_amount=_optional(data, "approvedAmount", "reimbursement"),
        month=_int(data, "applicableMonth", "reimbursement"),
        year=_int(data, "applicableYear", "reimbursement"),
        status=_enum(ReimbursementStatus, _get(data, "status", "draft"), "reimbursement.status"),
        is_taxable=bool(_get(data, "isTaxable", False)),
        tax_exemption_limit=_optional(data, "taxExemptionLimit", "reimbursement"),
    )


def parse_loan(data: Mapping[str, Any]) -> Loan:
    principal = _decimal(data, "principalAmount", "loan")
    return Loan(
        id=_get(data, "id"),
        loan_type=str(_get(data, "loanType", "loan")),
        name=_get(data, "loanName"),
        principal=principal,
        interest_rate=_optional(data, "interestRate", "loan") or Decimal("0"),
        tenure_months=_int(data, "tenureMonths", "loan"),
        deduction_start_month=_int(data, "deductionStartMonth", "loan"),
        deduction_start_year=_int(data, "deductionStartYear", "loan"),
        emi_amount=_optional(data, "emiAmount", "loan"),
        remaining_balance=_optional(data, "remainingBalance", "loan") or principal,
        status=_enum(LoanStatus, _get(data, "status", "active"), "loan.status"),
    )


def parse_adjustments(data: Mapping[str, Any]) -> EmployeeAdjustments:
    return EmployeeAdjustments(
        variable_pay=tuple(parse_variable_pay(d) for d in _get(data, "variablePay", []) or []),
        arrears=tuple(parse_arrears(d) for d in _get(data, "arrears", []) or []),
        reimbursements=tuple(parse_reimbursement(d) for d in _get(data, "reimbursements", []) or []),
        loans=tuple(parse_loan(d) for d in _get(data, "loans", []) or []),
    )


# ---------------------------------------------------------------------------
# Employee input
# ---------------------------------------------------------------------------


def parse_employee_input(data: Mapping[str, Any]) -> EmployeePayrollInput:
    """
    Parse one employee's complete run input from a single record.

    ``salary_structure`` (with ``ctc``) may be absent; the payslip then
    fails with MissingSalaryStructureError at calculation time.
    """
    employee_id = str(_require(data, "id", "employee"))
    return EmployeePayrollInput(
        employee_id=employee_id,
        company_id=str(_require(data, "companyId", "employee")),
        employee_code=_get(data, "employeeId", _get(data, "employeeCode")),
        country=_get(data, "country"),
        state=_get(data, "state"),
        salary=parse_salary_assignment(_get(data, "salaryStructure")),
        declarations=tuple(
            parse_tax_declaration({"employeeId": employee_id, **d})
            for d in _get(data, "taxDeclarations", []) or []
        ),
        adjustments=parse_adjustments(data),
        rent_paid=_optional(data, "rentPaid", "employee"),
        travel_expense=_optional(data, "travelExpense", "employee"),
    )
