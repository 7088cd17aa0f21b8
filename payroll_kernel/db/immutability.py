"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

A payslip is the legal record of what an employee was paid and what was
withheld. Once generated, its figures are never edited: a corrected payslip
replaces a generated one as a new row, and approved or locked payslips are
never touched again. A locked payroll run is closed for good.

The run service checks state before it does anything. These listeners are the
second line: they catch modifications made through any SQLAlchemy code path,
before the SQL reaches the database.

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                 | Rule
-----------------------|---------------------------------------------------
PayslipModel           | Financial fields never change after INSERT.
                       | Locked payslips never change at all.
                       | Approved/locked payslips cannot be deleted.
PayrollRunModel        | Locked runs never change and cannot be deleted.
PayrollRunFailureModel | Never updated or deleted (append-only audit rows).

updated_at / updated_by_id are audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

    from payroll_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

    # TESTS ONLY:
    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from payroll_kernel.exceptions import ImmutabilityViolationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})

# Columns on PayslipModel that carry computed figures.
PAYSLIP_FINANCIAL_FIELDS = frozenset({
    "payslip_number",
    "payroll_run_id",
    "employee_id",
    "company_id",
    "month",
    "year",
    "financial_year",
    "currency",
    "ctc",
    "gross_salary",
    "total_deductions",
    "net_salary",
    "taxable_earnings",
    "taxable_income",
    "annual_taxable_income",
    "tds_amount",
    "professional_tax_amount",
    "social_security_employee",
    "social_security_employer",
    "health_insurance_employee",
    "health_insurance_employer",
    "housing_exemption",
    "travel_exemption",
    "standard_deduction_share",
    "declared_exemption_share",
    "total_exemptions",
    "earnings_breakdown",
    "deductions_breakdown",
    "config_checksum",
    "generated_at",
})


def _previous_value(target, attr: str):
    """Value of ``attr`` as loaded from the database, before this flush."""
    history = get_history(target, attr)
    if history.deleted:
        return history.deleted[0]
    return getattr(target, attr)


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **extra):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **extra,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    changed = []
    for attr in inspect(target).attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if attr.history.has_changes():
            changed.append(attr.key)
    return changed


# =============================================================================
# Payslips
# =============================================================================


def _check_payslip_immutability(mapper, connection, target):
    """
    Block changes to payslip figures, and to anything on a locked payslip.

    Status transitions generated -> approved -> locked are the only
    permitted updates.
    """
    changed = _changed_fields(target)
    if not changed:
        return

    if _previous_value(target, "status") == "locked":
        _blocked(
            "Payslip", target.id, "UPDATE",
            "Locked payslips cannot be modified",
            fields=changed,
        )

    for field in changed:
        if field in PAYSLIP_FINANCIAL_FIELDS:
            _blocked(
                "Payslip", target.id, "UPDATE",
                f"Cannot modify field '{field}' on a generated payslip",
                field=field,
            )


def _check_payslip_delete(mapper, connection, target):
    """Approved and locked payslips cannot be deleted."""
    status = _previous_value(target, "status")
    if status in ("approved", "locked"):
        _blocked(
            "Payslip", target.id, "DELETE",
            f"{status.capitalize()} payslips cannot be deleted",
        )


# =============================================================================
# Payroll runs
# =============================================================================


def _check_run_immutability(mapper, connection, target):
    """Locked runs are closed: no field may change."""
    if _previous_value(target, "status") != "locked":
        return
    changed = _changed_fields(target)
    if changed:
        _blocked(
            "PayrollRun", target.id, "UPDATE",
            "Locked payroll runs cannot be modified",
            fields=changed,
        )


def _check_run_delete(mapper, connection, target):
    if _previous_value(target, "status") == "locked":
        _blocked(
            "PayrollRun", target.id, "DELETE",
            "Locked payroll runs cannot be deleted",
        )


# =============================================================================
# Failure records
# =============================================================================


def _check_failure_immutability(mapper, connection, target):
    """Failure records are append-only."""
    if _changed_fields(target):
        _blocked(
            "PayrollRunFailure", target.id, "UPDATE",
            "Payroll run failure records are immutable",
        )


def _check_failure_delete(mapper, connection, target):
    _blocked(
        "PayrollRunFailure", target.id, "DELETE",
        "Payroll run failure records cannot be deleted",
    )


# =============================================================================
# Registration
# =============================================================================


def _listener_table():
    from payroll_batch.models import PayrollRunFailureModel, PayrollRunModel
    from payroll_modules.payslip.orm import PayslipModel

    return (
        (PayslipModel, "before_update", _check_payslip_immutability),
        (PayslipModel, "before_delete", _check_payslip_delete),
        (PayrollRunModel, "before_update", _check_run_immutability),
        (PayrollRunModel, "before_delete", _check_run_delete),
        (PayrollRunFailureModel, "before_update", _check_failure_immutability),
        (PayrollRunFailureModel, "before_delete", _check_failure_delete),
    )


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners (idempotent).

    Call after the ORM models are importable and before any database
    operations begin.
    """
    registered = 0
    for target, event_name, listener_fn in _listener_table():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)
            registered += 1

    logger.info(
        "immutability_listeners_registered",
        extra={"registered": registered},
    )


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally violate immutability.
    """
    for target, event_name, listener_fn in _listener_table():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)

    logger.warning("immutability_listeners_unregistered")
