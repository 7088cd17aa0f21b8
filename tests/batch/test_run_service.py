"""
Tests for PayrollRunService.

Covers:
- Run creation and duplicate periods
- Processing with per-employee failure isolation
- Reprocessing: unchanged, replaced, frozen and stale payslips
- Snapshot failures and all-employee failures
- Locking and payslip approval
- Paged payslip queries and failure queries
"""

from dataclasses import replace
from decimal import Decimal

import pytest

from payroll_batch.domain.types import PayrollRunStatus
from payroll_batch.models import PayrollRunModel
from payroll_batch.services import PayrollRunService
from payroll_kernel.db.engine import session_scope
from payroll_kernel.exceptions import (
    BackendUnavailableError,
    GatewayError,
    InvalidConfigurationValueError,
    InvalidStateTransitionError,
    PayrollRunAlreadyExistsError,
    PayrollRunAlreadyProcessingError,
    PayrollRunLockedError,
    PayrollRunNotFoundError,
    PayslipNotFoundError,
)
from payroll_modules.payslip import PayslipStatus
from payroll_modules.salary import ComponentCategory
from payroll_services.data_source import (
    EmployeeFetchError,
    RunSnapshot,
    StaticPayrollDataSource,
)
from tests.builders import COMPANY_ID, fixed, make_config, make_employee

MONTH, YEAR = 6, 2024


def _employees():
    return [
        make_employee("emp-1"),
        make_employee("emp-2", components=(fixed("Basic", ComponentCategory.BASIC, "30000"),)),
        make_employee("emp-3", country="US"),
    ]


def _service(session, clock, employees=None, configs=None, **kw):
    source = StaticPayrollDataSource(
        configs if configs is not None else [make_config()],
        employees if employees is not None else _employees(),
        clock=clock,
    )
    return PayrollRunService(session, source, clock=clock, max_workers=2, **kw)


class _FailingSource:
    def fetch_snapshot(self, company_id, period):
        raise BackendUnavailableError("/api/employees/search", "connection refused")


class _FetchErrorSource:
    """One employee fails while fetching, the other is fetched."""

    def fetch_snapshot(self, company_id, period):
        return RunSnapshot(
            company_id=company_id,
            period=period,
            tax_configurations=(make_config(),),
            employees=(make_employee("emp-1"),),
            fetch_errors=(
                EmployeeFetchError("emp-9", "BACKEND_UNAVAILABLE", "timeout"),
            ),
        )


class TestCreateRun:

    def test_creates_draft(self, session, clock, actor_id):
        run = _service(session, clock).create_run(COMPANY_ID, MONTH, YEAR, actor_id, "corr-1")

        assert run.status == PayrollRunStatus.DRAFT
        assert run.period_label == "2024-06"
        assert run.attempt == 0
        assert run.created_by == actor_id
        assert run.created_at == clock.now()
        assert run.correlation_id == "corr-1"

    def test_duplicate_period_rejected(self, session, clock, actor_id):
        service = _service(session, clock)
        service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)
        with pytest.raises(PayrollRunAlreadyExistsError):
            service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)

    def test_same_period_other_company(self, session, clock, actor_id):
        service = _service(session, clock)
        service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)
        assert service.create_run("company-2", MONTH, YEAR, actor_id).company_id == "company-2"

    def test_invalid_month(self, session, clock, actor_id):
        with pytest.raises(InvalidConfigurationValueError):
            _service(session, clock).create_run(COMPANY_ID, 13, YEAR, actor_id)


class TestProcessRun:
    """First processing attempt of a three-employee run."""

    def test_failure_isolated_to_one_employee(self, session, clock, actor_id):
        service = _service(session, clock)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)

        result = service.process_run(run.id, actor_id)

        assert result.status == PayrollRunStatus.COMPLETED
        assert result.attempt == 1
        assert (result.total_employees, result.processed, result.failed) == (3, 2, 1)
        assert result.created == 2
        (failure,) = result.failures
        assert failure.employee_id == "emp-3"
        assert failure.error_code == "MISSING_TAX_CONFIGURATION"
        assert failure.details["country"] == "US"

    def test_run_counters_persisted(self, session, clock, actor_id):
        service = _service(session, clock)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)
        service.process_run(run.id, actor_id)

        stored = service.get_run(run.id)
        assert stored.status == PayrollRunStatus.COMPLETED
        assert stored.total_employees == 3
        assert stored.processed_employees == 2
        assert stored.failed_employees == 1
        assert stored.processed_by == actor_id

    def test_payslips_persisted(self, session, clock, actor_id):
        service = _service(session, clock)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)
        service.process_run(run.id, actor_id)

        page = service.list_payslips(run.id)
        assert [p.employee_id for p in page.items] == ["emp-1", "emp-2"]
        first = page.items[0]
        assert first.payroll_run_id == run.id
        assert first.tds_amount == Decimal("3541.67")
        assert first.net_salary == Decimal("46458.33")
        assert first.earnings[0].name == "Basic"
        assert service.get_payslip(first.id).payslip_number == "PS-202406-EMP-1"

    def test_fetch_errors_become_failures(self, session, clock, actor_id):
        service = PayrollRunService(session, _FetchErrorSource(), clock=clock)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)

        result = service.process_run(run.id, actor_id)

        assert (result.processed, result.failed) == (1, 1)
        assert result.failures[0].error_code == "BACKEND_UNAVAILABLE"

    def test_every_employee_failing_fails_the_run(self, session, clock, actor_id):
        service = _service(session, clock, configs=[])
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)

        result = service.process_run(run.id, actor_id)

        assert result.status == PayrollRunStatus.FAILED
        assert result.failed == 3

    def test_empty_run_completes(self, session, clock, actor_id):
        service = _service(session, clock, employees=[])
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)

        result = service.process_run(run.id, actor_id)

        assert result.status == PayrollRunStatus.COMPLETED
        assert result.total_employees == 0

    def test_snapshot_failure_marks_run_failed(self, session, clock, actor_id):
        service = PayrollRunService(session, _FailingSource(), clock=clock)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)

        with pytest.raises(BackendUnavailableError):
            service.process_run(run.id, actor_id)

        stored = service.get_run(run.id)
        assert stored.status == PayrollRunStatus.FAILED
        assert stored.attempt == 1

    def test_snapshot_failure_persists_when_caller_commits(self, session, clock, actor_id):
        run = PayrollRunService(session, _FailingSource(), clock=clock).create_run(
            COMPANY_ID, MONTH, YEAR, actor_id
        )
        session.commit()

        with pytest.raises(BackendUnavailableError):
            with session_scope() as db:
                try:
                    PayrollRunService(db, _FailingSource(), clock=clock).process_run(
                        run.id, actor_id
                    )
                except GatewayError:
                    db.commit()
                    raise

        with session_scope() as db:
            stored = PayrollRunService(db, _FailingSource(), clock=clock).get_run(run.id)
        assert stored.status == PayrollRunStatus.FAILED
        assert stored.attempt == 1

    def test_snapshot_failure_rolled_back_without_commit(self, session, clock, actor_id):
        run = PayrollRunService(session, _FailingSource(), clock=clock).create_run(
            COMPANY_ID, MONTH, YEAR, actor_id
        )
        session.commit()

        with pytest.raises(BackendUnavailableError):
            with session_scope() as db:
                PayrollRunService(db, _FailingSource(), clock=clock).process_run(
                    run.id, actor_id
                )

        with session_scope() as db:
            stored = PayrollRunService(db, _FailingSource(), clock=clock).get_run(run.id)
        assert stored.status == PayrollRunStatus.DRAFT
        assert stored.attempt == 0

    def test_unknown_run(self, session, clock, actor_id):
        from uuid import uuid4

        with pytest.raises(PayrollRunNotFoundError):
            _service(session, clock).process_run(uuid4(), actor_id)

    def test_run_already_processing(self, session, clock, actor_id):
        service = _service(session, clock)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)
        session.get(PayrollRunModel, run.id).status = "processing"
        session.flush()

        with pytest.raises(PayrollRunAlreadyProcessingError):
            service.process_run(run.id, actor_id)

    def test_processing_is_logged(self, session, clock, actor_id, captured_logs):
        service = _service(session, clock)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id, "corr-42")
        service.process_run(run.id, actor_id)

        records = [r for r in captured_logs() if r["message"] == "payroll_run_processed"]
        assert len(records) == 1
        assert records[0]["processed"] == 2
        assert records[0]["correlation_id"] == "corr-42"
        assert records[0]["payslips_created"] == 2
        assert records[0]["payslips_skipped"] == 0


class TestReprocessRun:
    """Later attempts against the same run."""

    def test_identical_inputs_leave_payslips_unchanged(self, session, clock, actor_id):
        service = _service(session, clock)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)
        service.process_run(run.id, actor_id)
        before = {p.employee_id: p.id for p in service.list_payslips(run.id).items}

        result = service.process_run(run.id, actor_id)

        assert result.attempt == 2
        assert (result.unchanged, result.created, result.replaced) == (2, 0, 0)
        after = {p.employee_id: p.id for p in service.list_payslips(run.id).items}
        assert after == before

    def test_changed_inputs_replace_payslip(self, session, clock, actor_id):
        service = _service(session, clock)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)
        service.process_run(run.id, actor_id)

        employees = _employees()
        employees[0] = make_employee(
            "emp-1", components=(fixed("Basic", ComponentCategory.BASIC, "55000"),),
        )
        result = _service(session, clock, employees=employees).process_run(run.id, actor_id)

        assert (result.replaced, result.unchanged) == (1, 1)
        page = service.list_payslips(run.id)
        assert page.total == 2
        assert page.items[0].gross_salary == Decimal("55000.00")

    def test_approved_payslip_is_not_replaced(self, session, clock, actor_id):
        service = _service(session, clock)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)
        service.process_run(run.id, actor_id)
        first = service.list_payslips(run.id).items[0]
        service.approve_payslip(first.id, actor_id)

        employees = _employees()
        employees[0] = make_employee(
            "emp-1", components=(fixed("Basic", ComponentCategory.BASIC, "55000"),),
        )
        result = _service(session, clock, employees=employees).process_run(run.id, actor_id)

        assert result.skipped == 1
        assert result.processed == 2
        kept = service.get_payslip(first.id)
        assert kept.status == PayslipStatus.APPROVED
        assert kept.gross_salary == Decimal("50000.00")

    def test_newly_failing_employee_loses_stale_payslip(self, session, clock, actor_id):
        service = _service(session, clock)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)
        service.process_run(run.id, actor_id)
        stale = service.list_payslips(run.id).items[1]

        employees = _employees()
        employees[1] = replace(employees[1], salary=None)
        result = _service(session, clock, employees=employees).process_run(run.id, actor_id)

        assert result.failed == 2
        with pytest.raises(PayslipNotFoundError):
            service.get_payslip(stale.id)
        codes = {f.employee_id: f.error_code for f in service.list_failures(run.id)}
        assert codes == {
            "emp-2": "MISSING_SALARY_STRUCTURE",
            "emp-3": "MISSING_TAX_CONFIGURATION",
        }

    def test_departed_employee_loses_generated_payslip(self, session, clock, actor_id):
        service = _service(session, clock)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)
        service.process_run(run.id, actor_id)

        remaining = _employees()[:1]
        result = _service(session, clock, employees=remaining).process_run(run.id, actor_id)

        assert (result.total_employees, result.processed) == (1, 1)
        page = service.list_payslips(run.id)
        assert [p.employee_id for p in page.items] == ["emp-1"]
        assert page.total == 1

        locked = service.lock_run(run.id, actor_id)
        assert locked.status == PayrollRunStatus.LOCKED
        assert service.list_payslips(run.id).total == 1

    def test_departed_employee_keeps_approved_payslip(self, session, clock, actor_id):
        service = _service(session, clock)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)
        service.process_run(run.id, actor_id)
        approved = next(
            p for p in service.list_payslips(run.id).items if p.employee_id == "emp-2"
        )
        service.approve_payslip(approved.id, actor_id)

        _service(session, clock, employees=_employees()[:1]).process_run(run.id, actor_id)

        assert service.get_payslip(approved.id).status == PayslipStatus.APPROVED

    def test_failures_kept_per_attempt(self, session, clock, actor_id):
        service = _service(session, clock)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)
        service.process_run(run.id, actor_id)
        service.process_run(run.id, actor_id)

        assert len(service.list_failures(run.id, attempt=1)) == 1
        assert len(service.list_failures(run.id, attempt=2)) == 1
        assert service.list_failures(run.id)[0].attempt == 2

    def test_failed_run_can_be_reprocessed(self, session, clock, actor_id):
        run = _service(session, clock, configs=[]).create_run(COMPANY_ID, MONTH, YEAR, actor_id)
        _service(session, clock, configs=[]).process_run(run.id, actor_id)

        result = _service(session, clock).process_run(run.id, actor_id)

        assert result.status == PayrollRunStatus.COMPLETED
        assert result.created == 2


class TestLockRun:

    def _processed_run(self, session, clock, actor_id):
        service = _service(session, clock)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)
        service.process_run(run.id, actor_id)
        return service, run

    def test_lock_freezes_run_and_payslips(self, session, clock, actor_id):
        service, run = self._processed_run(session, clock, actor_id)
        clock.advance(60)

        locked = service.lock_run(run.id, actor_id)

        assert locked.status == PayrollRunStatus.LOCKED
        assert locked.locked_at == clock.now()
        statuses = {p.status for p in service.list_payslips(run.id).items}
        assert statuses == {PayslipStatus.LOCKED}

    def test_locked_run_cannot_be_processed(self, session, clock, actor_id):
        service, run = self._processed_run(session, clock, actor_id)
        service.lock_run(run.id, actor_id)

        with pytest.raises(PayrollRunLockedError):
            service.process_run(run.id, actor_id)

    def test_lock_twice(self, session, clock, actor_id):
        service, run = self._processed_run(session, clock, actor_id)
        service.lock_run(run.id, actor_id)

        with pytest.raises(PayrollRunLockedError):
            service.lock_run(run.id, actor_id)

    def test_draft_run_cannot_be_locked(self, session, clock, actor_id):
        service = _service(session, clock)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)

        with pytest.raises(InvalidStateTransitionError):
            service.lock_run(run.id, actor_id)

    def test_incomplete_accounting_blocks_lock(self, session, clock, actor_id):
        service, run = self._processed_run(session, clock, actor_id)
        session.get(PayrollRunModel, run.id).total_employees = 4
        session.flush()

        with pytest.raises(InvalidStateTransitionError):
            service.lock_run(run.id, actor_id)

    def test_payslip_in_locked_run_cannot_be_approved(self, session, clock, actor_id):
        service, run = self._processed_run(session, clock, actor_id)
        payslip = service.list_payslips(run.id).items[0]
        service.lock_run(run.id, actor_id)

        with pytest.raises(PayrollRunLockedError):
            service.approve_payslip(payslip.id, actor_id)


class TestApprovePayslip:

    def test_approve(self, session, clock, actor_id):
        service = _service(session, clock)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)
        service.process_run(run.id, actor_id)
        payslip = service.list_payslips(run.id).items[0]

        approved = service.approve_payslip(payslip.id, actor_id)

        assert approved.status == PayslipStatus.APPROVED
        assert approved.financial_signature() == payslip.financial_signature()

    def test_approve_twice(self, session, clock, actor_id):
        service = _service(session, clock)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)
        service.process_run(run.id, actor_id)
        payslip = service.list_payslips(run.id).items[0]
        service.approve_payslip(payslip.id, actor_id)

        with pytest.raises(InvalidStateTransitionError):
            service.approve_payslip(payslip.id, actor_id)

    def test_unknown_payslip(self, session, clock, actor_id):
        from uuid import uuid4

        with pytest.raises(PayslipNotFoundError):
            _service(session, clock).approve_payslip(uuid4(), actor_id)


class TestListPayslips:

    def _run_with(self, session, clock, actor_id, count):
        employees = [make_employee(f"emp-{i:02d}") for i in range(count)]
        service = _service(session, clock, employees=employees)
        run = service.create_run(COMPANY_ID, MONTH, YEAR, actor_id)
        service.process_run(run.id, actor_id)
        return service, run

    def test_pages(self, session, clock, actor_id):
        service, run = self._run_with(session, clock, actor_id, 5)

        first = service.list_payslips(run.id, page=1, limit=2)
        last = service.list_payslips(run.id, page=3, limit=2)

        assert first.total == 5
        assert [p.employee_id for p in first.items] == ["emp-00", "emp-01"]
        assert first.has_more
        assert [p.employee_id for p in last.items] == ["emp-04"]
        assert not last.has_more

    def test_page_past_end_is_empty(self, session, clock, actor_id):
        service, run = self._run_with(session, clock, actor_id, 2)
        assert service.list_payslips(run.id, page=5, limit=2).items == ()

    @pytest.mark.parametrize("page,limit", [(0, 10), (1, 0), (1, 501)])
    def test_invalid_arguments(self, session, clock, actor_id, page, limit):
        service, run = self._run_with(session, clock, actor_id, 1)
        with pytest.raises(ValueError):
            service.list_payslips(run.id, page=page, limit=limit)

    def test_unknown_run(self, session, clock):
        from uuid import uuid4

        with pytest.raises(PayrollRunNotFoundError):
            _service(session, clock).list_payslips(uuid4())
