"""
payroll_batch.domain -- Pure types for payroll runs.

ZERO I/O.  All types are frozen dataclasses.
"""

from payroll_batch.domain.types import (
    EmployeeOutcome,
    OutcomeAction,
    PayrollRun,
    PayrollRunFailure,
    PayrollRunStatus,
    PayslipPage,
    RunProcessingResult,
)

__all__ = [
    "EmployeeOutcome",
    "OutcomeAction",
    "PayrollRun",
    "PayrollRunFailure",
    "PayrollRunStatus",
    "PayslipPage",
    "RunProcessingResult",
]
