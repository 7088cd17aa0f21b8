"""
payroll_batch.domain.types -- Pure frozen dataclasses for payroll runs.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - One PayrollRun per (company, month, year).
    - processed_employees + failed_employees == total_employees once a
      run leaves PROCESSING.
    - PayrollRunFailure rows are append-only; ``attempt`` ties each one to
      the processing attempt that produced it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from payroll_modules.payslip.models import Payslip


class PayrollRunStatus(str, Enum):
    """Run-level lifecycle status."""

    DRAFT = "draft"  # Created, never processed
    PROCESSING = "processing"  # Calculation in progress
    COMPLETED = "completed"  # At least one payslip generated
    FAILED = "failed"  # Every employee failed
    LOCKED = "locked"  # Closed; no further edits


class OutcomeAction(str, Enum):
    """What processing did with an employee's payslip."""

    CREATED = "created"
    REPLACED = "replaced"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"  # Existing payslip approved or locked
    FAILED = "failed"


@dataclass(frozen=True)
class PayrollRun:
    """Immutable snapshot of a payroll run."""

    id: UUID
    company_id: str
    month: int
    year: int
    status: PayrollRunStatus
    total_employees: int = 0
    processed_employees: int = 0
    failed_employees: int = 0
    attempt: int = 0  # Incremented on every process call
    processed_at: datetime | None = None
    processed_by: UUID | None = None
    locked_at: datetime | None = None
    created_at: datetime | None = None
    created_by: UUID | None = None
    correlation_id: str | None = None

    @property
    def period_label(self) -> str:
        return f"{self.year}-{self.month:02d}"


@dataclass(frozen=True)
class PayrollRunFailure:
    """Why one employee has no payslip in one processing attempt."""

    id: UUID
    payroll_run_id: UUID
    employee_id: str
    attempt: int
    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    recorded_at: datetime | None = None


@dataclass(frozen=True)
class EmployeeOutcome:
    """Result of computing one employee's payslip in a worker thread."""

    employee_id: str
    payslip: Payslip | None = None
    error_code: str | None = None
    error_message: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.payslip is not None


@dataclass(frozen=True)
class RunProcessingResult:
    """Returned by ``PayrollRunService.process_run()``."""

    run_id: UUID
    status: PayrollRunStatus
    attempt: int
    total_employees: int
    processed: int
    failed: int
    created: int = 0
    replaced: int = 0
    unchanged: int = 0
    skipped: int = 0
    failures: tuple[PayrollRunFailure, ...] = ()
    duration_ms: float = 0.0


@dataclass(frozen=True)
class PayslipPage:
    """One page of a run's payslips."""

    items: tuple[Payslip, ...]
    page: int
    limit: int
    total: int

    @property
    def has_more(self) -> bool:
        return self.page * self.limit < self.total
