"""
PayrollRunService -- payroll run lifecycle and persistence.

Contract:
    Creates runs (one per company/month/year), processes them (snapshot,
    parallel calculation, single-writer persistence), locks them, and
    answers queries for runs, failures and payslips.

Architecture: payroll_batch/services.  Imports from payroll_batch.domain,
    payroll_batch.models, payroll_modules and payroll_services.

Invariants enforced:
    - A locked run is never processed; its payslips never change.
    - Run status changes only through PAYROLL_RUN_WORKFLOW; payslip status
      only through PAYSLIP_WORKFLOW.
    - Reprocessing keeps identical generated payslips, replaces changed
      generated payslips and never touches approved or locked ones.
    - Every employee ends a processing attempt with a payslip or a failure
      record; counters are written by this service alone.
    - All timestamps come from the injected Clock.
"""

from __future__ import annotations

import time
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.exceptions import (
    InvalidStateTransitionError,
    PayrollKernelError,
    PayrollRunAlreadyExistsError,
    PayrollRunAlreadyProcessingError,
    PayrollRunLockedError,
    PayrollRunNotFoundError,
    PayslipLockedError,
    PayslipNotFoundError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_modules.payslip.assembler import PayslipAssembler
from payroll_modules.payslip.models import PayPeriod, Payslip, PayslipStatus
from payroll_modules.payslip.orm import PayslipModel
from payroll_modules.workflows import (
    ALL_EMPLOYEES_TERMINAL,
    PAYROLL_RUN_WORKFLOW,
    PAYSLIP_WORKFLOW,
)
from payroll_services.data_source import PayrollDataSource

from payroll_batch.domain.types import (
    EmployeeOutcome,
    OutcomeAction,
    PayrollRun,
    PayrollRunFailure,
    PayrollRunStatus,
    PayslipPage,
    RunProcessingResult,
)
from payroll_batch.models.run import PayrollRunFailureModel, PayrollRunModel
from payroll_batch.services.executor import PayrollCalculationExecutor

logger = get_logger("batch.run_service")

_FROZEN_PAYSLIP_STATES = (PayslipStatus.APPROVED.value, PayslipStatus.LOCKED.value)

MAX_PAGE_SIZE = 500


class PayrollRunService:
    """Payroll run lifecycle.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT auto-retry failed employees; reprocess the run instead.
    """

    def __init__(
        self,
        session: Session,
        data_source: PayrollDataSource,
        clock: Clock | None = None,
        max_workers: int = 4,
        assembler: PayslipAssembler | None = None,
    ):
        self._session = session
        self._data_source = data_source
        self._clock = clock or SystemClock()
        self._executor = PayrollCalculationExecutor(
            assembler or PayslipAssembler(self._clock),
            max_workers=max_workers,
        )

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create_run(
        self,
        company_id: str,
        month: int,
        year: int,
        actor_id: UUID,
        correlation_id: str | None = None,
    ) -> PayrollRun:
        """Create a DRAFT run for a company and period.

        Raises:
            PayrollRunAlreadyExistsError: A run exists for the period.
        """
        PayPeriod(year=year, month=month)

        existing = self._session.execute(
            select(PayrollRunModel.id).where(
                PayrollRunModel.company_id == company_id,
                PayrollRunModel.month == month,
                PayrollRunModel.year == year,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise PayrollRunAlreadyExistsError(company_id, month, year)

        now = self._clock.now()
        dto = PayrollRun(
            id=uuid4(),
            company_id=company_id,
            month=month,
            year=year,
            status=PayrollRunStatus(PAYROLL_RUN_WORKFLOW.initial_state),
            created_at=now,
            created_by=actor_id,
            correlation_id=correlation_id,
        )
        model = PayrollRunModel.from_dto(dto, created_by_id=actor_id)
        model.created_at = now
        self._session.add(model)
        self._session.flush()

        logger.info(
            "payroll_run_created",
            extra={
                "payroll_run_id": str(dto.id),
                "company_id": company_id,
                "period": dto.period_label,
            },
        )
        return model.to_dto()

    # -------------------------------------------------------------------------
    # Process
    # -------------------------------------------------------------------------

    def process_run(self, run_id: UUID, actor_id: UUID) -> RunProcessingResult:
        """Compute and persist every employee's payslip for the run.

        Raises:
            PayrollRunNotFoundError: Unknown run.
            PayrollRunLockedError: Run is locked.
            PayrollRunAlreadyProcessingError: Run is mid-processing.
            GatewayError: The run snapshot could not be fetched.  The run
                is flushed as FAILED and nothing else changes; the status
                survives only if the caller commits after catching the
                error, since ``session_scope`` rolls back on any exception.

        Callers that want the failure recorded commit it themselves::

            try:
                service.process_run(run_id, actor_id)
            except GatewayError:
                session.commit()
                raise
        """
        start_time = time.monotonic()
        run = self._load_run(run_id, for_update=True)

        if run.status == PayrollRunStatus.LOCKED.value:
            raise PayrollRunLockedError(str(run_id))
        if run.status == PayrollRunStatus.PROCESSING.value:
            raise PayrollRunAlreadyProcessingError(str(run_id))

        run.status = PAYROLL_RUN_WORKFLOW.next_state(run.status, "process")
        run.attempt += 1
        run.updated_by_id = actor_id
        self._session.flush()

        with LogContext.bind(
            correlation_id=run.correlation_id,
            company_id=run.company_id,
            payroll_run_id=str(run.id),
            actor_id=str(actor_id),
        ):
            logger.info(
                "payroll_run_processing_started",
                extra={"attempt": run.attempt, "period": f"{run.year}-{run.month:02d}"},
            )
            period = PayPeriod(year=run.year, month=run.month)
            try:
                snapshot = self._data_source.fetch_snapshot(run.company_id, period)
            except PayrollKernelError as exc:
                run.status = PAYROLL_RUN_WORKFLOW.next_state(run.status, "fail")
                run.processed_at = self._clock.now()
                self._session.flush()
                logger.error(
                    "payroll_run_snapshot_failed",
                    extra={"error_code": exc.code, "error": str(exc)},
                )
                raise

            outcomes = self._executor.calculate(snapshot, run.id)
            counts, failures = self._persist_outcomes(run, outcomes, actor_id)

            processed = (
                counts[OutcomeAction.CREATED]
                + counts[OutcomeAction.REPLACED]
                + counts[OutcomeAction.UNCHANGED]
                + counts[OutcomeAction.SKIPPED]
            )
            failed = counts[OutcomeAction.FAILED]
            total = len(outcomes)

            action = "fail" if total > 0 and processed == 0 else "complete"
            run.status = PAYROLL_RUN_WORKFLOW.next_state(run.status, action)
            run.total_employees = total
            run.processed_employees = processed
            run.failed_employees = failed
            run.processed_at = self._clock.now()
            run.processed_by = actor_id
            self._session.flush()

            duration_ms = round((time.monotonic() - start_time) * 1000, 2)
            logger.info(
                "payroll_run_processed",
                extra={
                    "status": run.status,
                    "attempt": run.attempt,
                    "total_employees": total,
                    "processed": processed,
                    "failed": failed,
                    "payslips_created": counts[OutcomeAction.CREATED],
                    "payslips_replaced": counts[OutcomeAction.REPLACED],
                    "payslips_unchanged": counts[OutcomeAction.UNCHANGED],
                    "payslips_skipped": counts[OutcomeAction.SKIPPED],
                    "duration_ms": duration_ms,
                },
            )

        return RunProcessingResult(
            run_id=run.id,
            status=PayrollRunStatus(run.status),
            attempt=run.attempt,
            total_employees=total,
            processed=processed,
            failed=failed,
            created=counts[OutcomeAction.CREATED],
            replaced=counts[OutcomeAction.REPLACED],
            unchanged=counts[OutcomeAction.UNCHANGED],
            skipped=counts[OutcomeAction.SKIPPED],
            failures=tuple(failures),
            duration_ms=duration_ms,
        )

    def _persist_outcomes(
        self,
        run: PayrollRunModel,
        outcomes: tuple[EmployeeOutcome, ...],
        actor_id: UUID,
    ) -> tuple[dict[OutcomeAction, int], list[PayrollRunFailure]]:
        existing = {
            p.employee_id: p
            for p in self._session.execute(
                select(PayslipModel).where(PayslipModel.payroll_run_id == run.id)
            ).scalars()
        }
        counts = {action: 0 for action in OutcomeAction}
        failures: list[PayrollRunFailure] = []

        for outcome in outcomes:
            current = existing.get(outcome.employee_id)

            if current is not None and current.status in _FROZEN_PAYSLIP_STATES:
                logger.info(
                    "payslip_frozen_skipped",
                    extra={"employee_id": outcome.employee_id, "payslip_status": current.status},
                )
                counts[OutcomeAction.SKIPPED] += 1
                continue

            if not outcome.succeeded:
                if current is not None:
                    self._session.delete(current)
                    self._session.flush()
                    logger.info(
                        "stale_payslip_removed",
                        extra={"employee_id": outcome.employee_id},
                    )
                failures.append(self._record_failure(run, outcome, actor_id))
                counts[OutcomeAction.FAILED] += 1
                continue

            payslip = outcome.payslip
            if current is not None:
                if current.to_dto().financial_signature() == payslip.financial_signature():
                    counts[OutcomeAction.UNCHANGED] += 1
                    continue
                # Flush the delete first: the unit of work inserts before it
                # deletes, which would trip uq_payslip_run_employee.
                self._session.delete(current)
                self._session.flush()
                counts[OutcomeAction.REPLACED] += 1
            else:
                counts[OutcomeAction.CREATED] += 1

            model = PayslipModel.from_dto(payslip, created_by_id=actor_id)
            model.created_at = self._clock.now()
            self._session.add(model)

        # Employees no longer in the snapshot keep only frozen payslips
        seen = {outcome.employee_id for outcome in outcomes}
        for employee_id, current in existing.items():
            if employee_id in seen or current.status in _FROZEN_PAYSLIP_STATES:
                continue
            self._session.delete(current)
            logger.info(
                "orphaned_payslip_removed",
                extra={"employee_id": employee_id, "payslip_number": current.payslip_number},
            )

        self._session.flush()
        return counts, failures

    def _record_failure(
        self, run: PayrollRunModel, outcome: EmployeeOutcome, actor_id: UUID,
    ) -> PayrollRunFailure:
        now = self._clock.now()
        dto = PayrollRunFailure(
            id=uuid4(),
            payroll_run_id=run.id,
            employee_id=outcome.employee_id,
            attempt=run.attempt,
            error_code=outcome.error_code or "UNKNOWN",
            message=outcome.error_message or "",
            details=outcome.details,
            recorded_at=now,
        )
        model = PayrollRunFailureModel.from_dto(dto, created_by_id=actor_id)
        model.created_at = now
        self._session.add(model)
        return dto

    # -------------------------------------------------------------------------
    # Lock
    # -------------------------------------------------------------------------

    def lock_run(self, run_id: UUID, actor_id: UUID) -> PayrollRun:
        """Lock the run and every payslip in it.

        Raises:
            PayrollRunLockedError: Already locked.
            InvalidStateTransitionError: Run not processed, or some
                employee has neither a payslip nor a failure record.
        """
        run = self._load_run(run_id, for_update=True)
        if run.status == PayrollRunStatus.LOCKED.value:
            raise PayrollRunLockedError(str(run_id))

        new_status = PAYROLL_RUN_WORKFLOW.next_state(run.status, "lock")
        if run.processed_employees + run.failed_employees != run.total_employees:
            logger.warning(
                "payroll_run_lock_guard_failed",
                extra={
                    "payroll_run_id": str(run_id),
                    "guard": ALL_EMPLOYEES_TERMINAL.name,
                    "total_employees": run.total_employees,
                    "processed": run.processed_employees,
                    "failed": run.failed_employees,
                },
            )
            raise InvalidStateTransitionError(PAYROLL_RUN_WORKFLOW.name, run.status, "lock")

        payslips = self._session.execute(
            select(PayslipModel).where(PayslipModel.payroll_run_id == run.id)
        ).scalars().all()
        for payslip in payslips:
            if payslip.status != PayslipStatus.LOCKED.value:
                payslip.status = PAYSLIP_WORKFLOW.next_state(payslip.status, "lock")
                payslip.updated_by_id = actor_id
        self._session.flush()

        run.status = new_status
        run.locked_at = self._clock.now()
        run.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "payroll_run_locked",
            extra={"payroll_run_id": str(run_id), "payslips_locked": len(payslips)},
        )
        return run.to_dto()

    # -------------------------------------------------------------------------
    # Payslips
    # -------------------------------------------------------------------------

    def approve_payslip(self, payslip_id: UUID, actor_id: UUID) -> Payslip:
        """Approve a generated payslip.

        Raises:
            PayslipNotFoundError: Unknown payslip.
            PayrollRunLockedError: The owning run is locked.
            PayslipLockedError: The payslip is locked.
            InvalidStateTransitionError: The payslip is already approved.
        """
        model = self._session.get(PayslipModel, payslip_id)
        if model is None:
            raise PayslipNotFoundError(str(payslip_id))

        run = self._load_run(model.payroll_run_id)
        if run.status == PayrollRunStatus.LOCKED.value:
            raise PayrollRunLockedError(str(run.id))
        if model.status == PayslipStatus.LOCKED.value:
            raise PayslipLockedError(str(payslip_id), model.status)

        model.status = PAYSLIP_WORKFLOW.next_state(model.status, "approve")
        model.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "payslip_approved",
            extra={"payslip_id": str(payslip_id), "employee_id": model.employee_id},
        )
        return model.to_dto()

    def get_payslip(self, payslip_id: UUID) -> Payslip:
        model = self._session.get(PayslipModel, payslip_id)
        if model is None:
            raise PayslipNotFoundError(str(payslip_id))
        return model.to_dto()

    def list_payslips(self, run_id: UUID, page: int = 1, limit: int = 50) -> PayslipPage:
        """One page of the run's payslips, ordered by payslip number."""
        if page < 1:
            raise ValueError("page must be >= 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValueError(f"limit must be within 1-{MAX_PAGE_SIZE}")
        self._load_run(run_id)

        total = self._session.execute(
            select(func.count()).select_from(PayslipModel).where(
                PayslipModel.payroll_run_id == run_id,
            )
        ).scalar_one()
        models = self._session.execute(
            select(PayslipModel)
            .where(PayslipModel.payroll_run_id == run_id)
            .order_by(PayslipModel.payslip_number)
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars().all()

        return PayslipPage(
            items=tuple(m.to_dto() for m in models),
            page=page,
            limit=limit,
            total=total,
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_run(self, run_id: UUID) -> PayrollRun:
        return self._load_run(run_id).to_dto()

    def list_failures(
        self, run_id: UUID, attempt: int | None = None,
    ) -> tuple[PayrollRunFailure, ...]:
        """Failure records of one attempt (default: the latest)."""
        run = self._load_run(run_id)
        wanted = run.attempt if attempt is None else attempt
        models = self._session.execute(
            select(PayrollRunFailureModel)
            .where(
                PayrollRunFailureModel.payroll_run_id == run_id,
                PayrollRunFailureModel.attempt == wanted,
            )
            .order_by(PayrollRunFailureModel.employee_id)
        ).scalars().all()
        return tuple(m.to_dto() for m in models)

    def _load_run(self, run_id: UUID, for_update: bool = False) -> PayrollRunModel:
        stmt = select(PayrollRunModel).where(PayrollRunModel.id == run_id)
        if for_update:
            stmt = stmt.with_for_update()
        model = self._session.execute(stmt).scalar_one_or_none()
        if model is None:
            raise PayrollRunNotFoundError(str(run_id))
        return model
