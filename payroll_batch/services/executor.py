"""
PayrollCalculationExecutor -- parallel per-employee payslip calculation.

Contract:
    ``calculate(snapshot, run_id)`` computes one payslip per employee in the
    snapshot and returns one ``EmployeeOutcome`` per employee, including
    the employees whose inputs could not be fetched.

Architecture: payroll_batch/services.  Imports from payroll_config,
    payroll_modules and payroll_services.  Performs NO database access;
    the run service is the single writer.

Invariants enforced:
    - Workers only read the immutable RunSnapshot.
    - One employee's failure never affects another's outcome.
    - Outcomes are returned in snapshot order regardless of completion
      order.
"""

from __future__ import annotations

import contextvars
import time
from concurrent.futures import ThreadPoolExecutor
from uuid import UUID

from payroll_config import find_tax_configuration
from payroll_kernel.exceptions import PayrollKernelError
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_modules.payslip.assembler import EmployeePayrollInput, PayslipAssembler
from payroll_services.data_source import RunSnapshot

from payroll_batch.domain.types import EmployeeOutcome

logger = get_logger("batch.executor")


class PayrollCalculationExecutor:
    """Runs the pure payslip assembler over a snapshot in a thread pool.

    Non-goals:
        - Does NOT persist anything -- the caller aggregates outcomes.
        - Does NOT retry failed employees.
    """

    def __init__(self, assembler: PayslipAssembler, max_workers: int = 4):
        if max_workers <= 0:
            raise ValueError("max_workers must be positive")
        self._assembler = assembler
        self._max_workers = max_workers

    def calculate(self, snapshot: RunSnapshot, run_id: UUID) -> tuple[EmployeeOutcome, ...]:
        start = time.monotonic()

        outcomes = [
            EmployeeOutcome(
                employee_id=err.employee_id,
                error_code=err.error_code,
                error_message=err.message,
                details=err.details,
            )
            for err in snapshot.fetch_errors
        ]

        if snapshot.employees:
            workers = min(self._max_workers, len(snapshot.employees))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="payroll") as pool:
                futures = [
                    pool.submit(
                        contextvars.copy_context().run,
                        self._calculate_one, snapshot, employee, run_id,
                    )
                    for employee in snapshot.employees
                ]
                outcomes.extend(f.result() for f in futures)

        failed = sum(1 for o in outcomes if not o.succeeded)
        logger.info(
            "payroll_calculation_completed",
            extra={
                "payroll_run_id": str(run_id),
                "employees": len(outcomes),
                "succeeded": len(outcomes) - failed,
                "failed": failed,
                "max_workers": self._max_workers,
                "duration_ms": round((time.monotonic() - start) * 1000, 2),
            },
        )
        return tuple(outcomes)

    def _calculate_one(
        self,
        snapshot: RunSnapshot,
        employee: EmployeePayrollInput,
        run_id: UUID,
    ) -> EmployeeOutcome:
        item_start = time.monotonic()
        with LogContext.bind(employee_id=employee.employee_id):
            try:
                config = find_tax_configuration(
                    snapshot.tax_configurations + snapshot.rejected_configurations,
                    company_id=employee.company_id,
                    country=employee.country,
                    state=employee.state,
                    month=snapshot.period.month,
                    year=snapshot.period.year,
                )
                payslip = self._assembler.assemble(
                    config, employee, snapshot.period, payroll_run_id=run_id,
                )
            except PayrollKernelError as exc:
                logger.warning(
                    "employee_payslip_failed",
                    extra={"error_code": exc.code, "error": str(exc)},
                )
                return EmployeeOutcome(
                    employee_id=employee.employee_id,
                    error_code=exc.code,
                    error_message=str(exc),
                    details=exc.details(),
                    duration_ms=round((time.monotonic() - item_start) * 1000, 2),
                )
            except Exception as exc:
                logger.exception("employee_payslip_unhandled_exception")
                return EmployeeOutcome(
                    employee_id=employee.employee_id,
                    error_code="UNHANDLED_EXCEPTION",
                    error_message=str(exc),
                    details={"exception_type": type(exc).__name__},
                    duration_ms=round((time.monotonic() - item_start) * 1000, 2),
                )

        return EmployeeOutcome(
            employee_id=employee.employee_id,
            payslip=payslip,
            duration_ms=round((time.monotonic() - item_start) * 1000, 2),
        )
