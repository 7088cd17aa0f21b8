"""
Tests for ORM-level immutability of payslips, runs and failure records.

The service checks state before writing; these tests go around the
service and modify models directly to prove the listeners still block it.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from payroll_batch.models import PayrollRunFailureModel, PayrollRunModel
from payroll_batch.services import PayrollRunService
from payroll_kernel.exceptions import ImmutabilityViolationError
from payroll_modules.payslip.orm import PayslipModel
from payroll_services.data_source import StaticPayrollDataSource
from tests.builders import COMPANY_ID, make_config, make_employee


@pytest.fixture
def processed_run(session, clock, actor_id):
    source = StaticPayrollDataSource(
        [make_config()],
        [make_employee("emp-1"), make_employee("emp-2", country="US")],
        clock=clock,
    )
    service = PayrollRunService(session, source, clock=clock, max_workers=1)
    run = service.create_run(COMPANY_ID, 6, 2024, actor_id)
    service.process_run(run.id, actor_id)
    return service, run


def _payslip(session, run_id) -> PayslipModel:
    return session.execute(
        select(PayslipModel).where(PayslipModel.payroll_run_id == run_id)
    ).scalars().one()


class TestPayslipImmutability:

    def test_financial_field_cannot_change(self, session, processed_run):
        _, run = processed_run
        payslip = _payslip(session, run.id)
        payslip.net_salary = Decimal("1.00")

        with pytest.raises(ImmutabilityViolationError, match="net_salary"):
            session.flush()

    def test_breakdown_cannot_change(self, session, processed_run):
        _, run = processed_run
        payslip = _payslip(session, run.id)
        payslip.earnings_breakdown = []

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_status_transition_allowed(self, session, processed_run):
        _, run = processed_run
        payslip = _payslip(session, run.id)
        payslip.status = "approved"
        session.flush()

    def test_locked_payslip_frozen(self, session, processed_run, actor_id):
        service, run = processed_run
        service.lock_run(run.id, actor_id)
        payslip = _payslip(session, run.id)
        payslip.status = "approved"

        with pytest.raises(ImmutabilityViolationError, match="Locked payslips"):
            session.flush()

    def test_approved_payslip_cannot_be_deleted(self, session, processed_run, actor_id):
        service, run = processed_run
        payslip = _payslip(session, run.id)
        service.approve_payslip(payslip.id, actor_id)
        session.delete(payslip)

        with pytest.raises(ImmutabilityViolationError, match="cannot be deleted"):
            session.flush()

    def test_generated_payslip_can_be_deleted(self, session, processed_run):
        _, run = processed_run
        session.delete(_payslip(session, run.id))
        session.flush()


class TestRunImmutability:

    def test_locked_run_frozen(self, session, processed_run, actor_id):
        service, run = processed_run
        service.lock_run(run.id, actor_id)
        model = session.get(PayrollRunModel, run.id)
        model.processed_employees = 0

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_locked_run_cannot_be_deleted(self, session, processed_run, actor_id):
        service, run = processed_run
        service.lock_run(run.id, actor_id)
        session.delete(session.get(PayrollRunModel, run.id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_unlocked_run_counters_may_change(self, session, processed_run):
        _, run = processed_run
        session.get(PayrollRunModel, run.id).processed_employees = 0
        session.flush()


class TestFailureRecords:

    def _failure(self, session, run_id) -> PayrollRunFailureModel:
        return session.execute(
            select(PayrollRunFailureModel).where(PayrollRunFailureModel.payroll_run_id == run_id)
        ).scalars().one()

    def test_failure_cannot_change(self, session, processed_run):
        _, run = processed_run
        self._failure(session, run.id).message = "edited"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_failure_cannot_be_deleted(self, session, processed_run):
        _, run = processed_run
        session.delete(self._failure(session, run.id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
