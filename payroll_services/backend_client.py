"""
PayrollBackendClient -- typed calls to the payroll backend endpoints.

Wraps a ``BackendGateway`` and maps each endpoint's payload onto payroll
domain objects.  Paths are relative to the gateway's base URL.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterator
from uuid import UUID

from payroll_config.loader import parse_backend_tax_configurations
from payroll_config.schema import RejectedTaxConfiguration, TaxConfiguration
from payroll_kernel.exceptions import BackendResponseError
from payroll_kernel.logging_config import get_logger
from payroll_modules.adjustments import EmployeeAdjustments
from payroll_modules.declarations import TaxDeclaration
from payroll_modules.payslip.models import PayPeriod
from payroll_modules.salary import SalaryAssignment
from payroll_services.gateway import BackendGateway
from payroll_services.mapping import (
    parse_adjustments,
    parse_salary_assignment,
    parse_tax_declaration,
)

logger = get_logger("services.backend_client")


class PayrollBackendClient:

    def __init__(self, gateway: BackendGateway):
        self._gateway = gateway

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def tax_configurations(
        self, company_id: str,
    ) -> tuple[tuple[TaxConfiguration, ...], tuple[RejectedTaxConfiguration, ...]]:
        """The company's valid configurations and the records that failed validation."""
        records = self._gateway.get(f"/api/payroll/tax-configurations/company/{company_id}") or []
        return parse_backend_tax_configurations(records)

    def iter_active_employees(self, company_id: str, page_size: int = 100) -> Iterator[dict[str, Any]]:
        return self._gateway.iter_pages(
            "/api/employees/search",
            {"companyId": company_id, "status": "active"},
            page_size=page_size,
        )

    def salary_assignment(self, employee_id: str) -> SalaryAssignment | None:
        """The employee's assigned structure, or None when none is assigned."""
        try:
            record = self._gateway.get(f"/api/payroll/salary-structures/employee/{employee_id}")
        except BackendResponseError as exc:
            if exc.status_code != 404:
                raise
            return None
        return parse_salary_assignment(record)

    def tax_declarations(self, employee_id: str, financial_year: str) -> tuple[TaxDeclaration, ...]:
        records = self._gateway.get(
            f"/api/payroll/tax-declarations/employee/{employee_id}",
            {"financialYear": financial_year},
        ) or []
        return tuple(parse_tax_declaration({"employeeId": employee_id, **r}) for r in records)

    def adjustments(self, employee_id: str, period: PayPeriod) -> EmployeeAdjustments:
        """Variable pay, arrears and reimbursements for the month, plus active loans."""
        month = {"month": period.month, "year": period.year}
        return parse_adjustments({
            "variablePay": self._gateway.get(
                f"/api/payroll/variable-pay/employee/{employee_id}", month
            ) or [],
            "arrears": self._gateway.get(
                f"/api/payroll/arrears/employee/{employee_id}", month
            ) or [],
            "reimbursements": self._gateway.get(
                f"/api/payroll/reimbursements/employee/{employee_id}", month
            ) or [],
            "loans": self._gateway.get(
                f"/api/payroll/loans/employee/{employee_id}/active"
            ) or [],
        })

    def iter_run_payslips(self, run_id: UUID | str, page_size: int = 100) -> Iterator[dict[str, Any]]:
        return self._gateway.iter_pages(f"/api/payroll/payslips/run/{run_id}", page_size=page_size)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def process_run(self, run_id: UUID | str) -> dict[str, Any]:
        """Ask the backend to process a run; returns its updated run record."""
        record = self._gateway.post(f"/api/payroll/runs/{run_id}/process")
        logger.info("backend_run_processing_requested", extra={"payroll_run_id": str(run_id)})
        return record or {}

    def verify_declaration(self, declaration_id: str, verified_amount: Decimal) -> TaxDeclaration:
        """
        Verify a submitted declaration with the amount the verifier accepted.

        The amount travels as a decimal string.
        """
        record = self._gateway.post(
            f"/api/payroll/tax-declarations/{declaration_id}/verify",
            json={"verifiedAmount": str(verified_amount)},
        )
        declaration = parse_tax_declaration(record)
        logger.info(
            "backend_declaration_verified",
            extra={
                "declaration_id": declaration_id,
                "employee_id": declaration.employee_id,
                "verified_amount": str(verified_amount),
            },
        )
        return declaration
