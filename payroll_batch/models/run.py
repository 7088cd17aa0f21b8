"""
ORM models for payroll run persistence.

Contract:
    PayrollRunModel and PayrollRunFailureModel persist run state and the
    per-employee failure records.  Each has ``to_dto()`` / ``from_dto()``
    round-trip methods.

Architecture: payroll_batch/models. Imports from payroll_kernel.db.base only.

Invariants enforced:
    - One run per (company_id, month, year) (uq_payroll_run_period).
    - Failure rows are append-only (ORM immutability listeners).
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from payroll_batch.domain.types import PayrollRun, PayrollRunFailure


class PayrollRunModel(TrackedBase):
    """Persistent payroll run record."""

    __tablename__ = "payroll_runs"

    __table_args__ = (
        UniqueConstraint("company_id", "month", "year", name="uq_payroll_run_period"),
        Index("ix_payroll_runs_status", "status"),
    )

    company_id: Mapped[str] = mapped_column(String(100), nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    total_employees: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed_employees: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_employees: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    attempt: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    processed_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    correlation_id: Mapped[str | None] = mapped_column(String(200), nullable=True)

    failures: Mapped[list["PayrollRunFailureModel"]] = relationship(
        "PayrollRunFailureModel",
        back_populates="run",
        foreign_keys="PayrollRunFailureModel.payroll_run_id",
    )

    def to_dto(self) -> PayrollRun:
        from payroll_batch.domain.types import PayrollRun, PayrollRunStatus

        return PayrollRun(
            id=self.id,
            company_id=self.company_id,
            month=self.month,
            year=self.year,
            status=PayrollRunStatus(self.status),
            total_employees=self.total_employees,
            processed_employees=self.processed_employees,
            failed_employees=self.failed_employees,
            attempt=self.attempt,
            processed_at=self.processed_at,
            processed_by=self.processed_by,
            locked_at=self.locked_at,
            created_at=self.created_at,
            created_by=self.created_by_id,
            correlation_id=self.correlation_id,
        )

    @classmethod
    def from_dto(cls, dto: PayrollRun, created_by_id: UUID) -> PayrollRunModel:
        return cls(
            id=dto.id,
            company_id=dto.company_id,
            month=dto.month,
            year=dto.year,
            status=dto.status.value,
            total_employees=dto.total_employees,
            processed_employees=dto.processed_employees,
            failed_employees=dto.failed_employees,
            attempt=dto.attempt,
            processed_at=dto.processed_at,
            processed_by=dto.processed_by,
            locked_at=dto.locked_at,
            correlation_id=dto.correlation_id,
            created_by_id=created_by_id,
            updated_by_id=None,
        )


class PayrollRunFailureModel(TrackedBase):
    """One employee's failure in one processing attempt (append-only)."""

    __tablename__ = "payroll_run_failures"

    __table_args__ = (
        Index("ix_payroll_run_failures_run_attempt", "payroll_run_id", "attempt"),
        Index("ix_payroll_run_failures_employee", "employee_id"),
    )

    payroll_run_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("payroll_runs.id"),
        nullable=False,
    )
    employee_id: Mapped[str] = mapped_column(String(100), nullable=False)
    attempt: Mapped[int] = mapped_column(Integer, nullable=False)
    error_code: Mapped[str] = mapped_column(String(100), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    recorded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    run: Mapped["PayrollRunModel"] = relationship(
        "PayrollRunModel",
        back_populates="failures",
        foreign_keys=[payroll_run_id],
    )

    def to_dto(self) -> PayrollRunFailure:
        from payroll_batch.domain.types import PayrollRunFailure

        return PayrollRunFailure(
            id=self.id,
            payroll_run_id=self.payroll_run_id,
            employee_id=self.employee_id,
            attempt=self.attempt,
            error_code=self.error_code,
            message=self.message,
            details=self.details or {},
            recorded_at=self.recorded_at,
        )

    @classmethod
    def from_dto(cls, dto: PayrollRunFailure, created_by_id: UUID) -> PayrollRunFailureModel:
        return cls(
            id=dto.id,
            payroll_run_id=dto.payroll_run_id,
            employee_id=dto.employee_id,
            attempt=dto.attempt,
            error_code=dto.error_code,
            message=dto.message,
            details=dto.details or None,
            recorded_at=dto.recorded_at,
            created_by_id=created_by_id,
            updated_by_id=None,
        )
