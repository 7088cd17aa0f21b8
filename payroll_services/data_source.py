"""
Run inputs.

A payroll run reads everything it needs exactly once, into an immutable
``RunSnapshot``, before any calculation starts.  Worker threads only ever
see the snapshot.

    PayrollDataSource            -- protocol
    StaticPayrollDataSource      -- in-memory or YAML fixture
    BackendPayrollDataSource     -- backend API through BackendGateway

A failure fetching one employee's inputs is kept on the snapshot as an
``EmployeeFetchError`` and fails that employee only.  A failure fetching
the configurations or the employee list aborts the snapshot.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Protocol

from payroll_config.loader import load_yaml_file, parse_decimal, parse_tax_configuration
from payroll_config import find_tax_configuration
from payroll_config.schema import RejectedTaxConfiguration, TaxConfiguration
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.exceptions import ConfigurationError, PayrollKernelError
from payroll_kernel.logging_config import get_logger
from payroll_modules.payslip.assembler import EmployeePayrollInput
from payroll_modules.payslip.models import PayPeriod
from payroll_services.backend_client import PayrollBackendClient
from payroll_services.gateway import BackendGateway
from payroll_services.mapping import parse_employee_input


logger = get_logger("services.data_source")


def _optional_amount(record: dict[str, Any], key: str) -> Decimal | None:
    value = record.get(key)
    return None if value is None else parse_decimal(value, f"employee.{key}")


def _financial_year_for(
    record: dict[str, Any],
    period: PayPeriod,
    configs: tuple[TaxConfiguration | RejectedTaxConfiguration, ...],
) -> str | None:
    """Label of the financial year the employee's configuration covers, if any."""
    try:
        config = find_tax_configuration(
            configs,
            company_id=str(record.get("companyId")),
            country=record.get("country"),
            state=record.get("state"),
            month=period.month,
            year=period.year,
        )
    except ConfigurationError:
        # The calculation reports the missing or invalid configuration
        return None
    return config.financial_year


@dataclass(frozen=True)
class EmployeeFetchError:
    employee_id: str
    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(cls, employee_id: str, exc: PayrollKernelError) -> EmployeeFetchError:
        return cls(employee_id, exc.code, str(exc), exc.details())


@dataclass(frozen=True)
class RunSnapshot:
    """Immutable inputs of one payroll run."""

    company_id: str
    period: PayPeriod
    tax_configurations: tuple[TaxConfiguration, ...]
    employees: tuple[EmployeePayrollInput, ...]
    fetch_errors: tuple[EmployeeFetchError, ...] = ()
    rejected_configurations: tuple[RejectedTaxConfiguration, ...] = ()
    fetched_at: datetime | None = None

    @property
    def total_employees(self) -> int:
        return len(self.employees) + len(self.fetch_errors)


class PayrollDataSource(Protocol):
    def fetch_snapshot(self, company_id: str, period: PayPeriod) -> RunSnapshot:
        ...


# ---------------------------------------------------------------------------
# Static
# ---------------------------------------------------------------------------


class StaticPayrollDataSource:
    """Serves fixed configurations and employees; used by tests and demos."""

    def __init__(
        self,
        tax_configurations: Iterable[TaxConfiguration],
        employees: Iterable[EmployeePayrollInput],
        clock: Clock | None = None,
    ):
        self._configs = tuple(tax_configurations)
        self._employees = tuple(employees)
        self._clock = clock or SystemClock()

    @classmethod
    def from_yaml(cls, path: Path, clock: Clock | None = None) -> StaticPayrollDataSource:
        """
        Load a fixture with top-level ``tax_configurations`` and
        ``employees`` lists.
        """
        data = load_yaml_file(path)
        configs = [parse_tax_configuration(c) for c in data.get("tax_configurations", [])]
        employees = [parse_employee_input(e) for e in data.get("employees", [])]
        logger.info(
            "static_data_source_loaded",
            extra={
                "path": str(path),
                "tax_configurations": len(configs),
                "employees": len(employees),
            },
        )
        return cls(configs, employees, clock=clock)

    def fetch_snapshot(self, company_id: str, period: PayPeriod) -> RunSnapshot:
        return RunSnapshot(
            company_id=company_id,
            period=period,
            tax_configurations=tuple(c for c in self._configs if c.company_id == company_id),
            employees=tuple(e for e in self._employees if e.company_id == company_id),
            fetched_at=self._clock.now(),
        )


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------


class BackendPayrollDataSource:
    """Reads run inputs from the backend API."""

    def __init__(
        self,
        gateway: BackendGateway,
        page_size: int = 100,
        clock: Clock | None = None,
    ):
        self._client = PayrollBackendClient(gateway)
        self._page_size = page_size
        self._clock = clock or SystemClock()

    @property
    def page_size(self) -> int:
        return self._page_size

    def fetch_snapshot(self, company_id: str, period: PayPeriod) -> RunSnapshot:
        start = time.monotonic()

        configs, rejected = self._client.tax_configurations(company_id)
        records = list(self._client.iter_active_employees(company_id, self._page_size))

        employees: list[EmployeePayrollInput] = []
        errors: list[EmployeeFetchError] = []
        for record in records:
            employee_id = str(record.get("id"))
            try:
                employees.append(self._employee_input(record, period, configs + rejected))
            except PayrollKernelError as exc:
                logger.warning(
                    "employee_inputs_unavailable",
                    extra={"employee_id": employee_id, "error_code": exc.code},
                )
                errors.append(EmployeeFetchError.from_exception(employee_id, exc))

        logger.info(
            "run_snapshot_fetched",
            extra={
                "company_id": company_id,
                "period": period.label,
                "tax_configurations": len(configs),
                "employees": len(employees),
                "fetch_errors": len(errors),
                "duration_ms": round((time.monotonic() - start) * 1000, 2),
            },
        )
        return RunSnapshot(
            company_id=company_id,
            period=period,
            tax_configurations=configs,
            employees=tuple(employees),
            fetch_errors=tuple(errors),
            rejected_configurations=rejected,
            fetched_at=self._clock.now(),
        )

    def _employee_input(
        self,
        record: dict[str, Any],
        period: PayPeriod,
        configs: tuple[TaxConfiguration | RejectedTaxConfiguration, ...],
    ) -> EmployeePayrollInput:
        employee_id = str(record["id"])
        financial_year = _financial_year_for(record, period, configs)

        return EmployeePayrollInput(
            employee_id=employee_id,
            company_id=str(record.get("companyId")),
            employee_code=record.get("employeeId"),
            country=record.get("country"),
            state=record.get("state"),
            salary=self._client.salary_assignment(employee_id),
            declarations=(
                self._client.tax_declarations(employee_id, financial_year)
                if financial_year is not None else ()
            ),
            adjustments=self._client.adjustments(employee_id, period),
            rent_paid=_optional_amount(record, "rentPaid"),
            travel_expense=_optional_amount(record, "travelExpense"),
        )
