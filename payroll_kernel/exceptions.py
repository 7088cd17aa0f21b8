"""
Typed Exception Hierarchy for the Payroll Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A payroll run processes hundreds of employees and must report, per employee,
exactly why a payslip could not be produced. Generic exceptions force the
run processor to parse message strings. Instead:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (employee, configuration scope, ...)

The run processor records ``code``, ``str(exc)`` and ``exc.details()`` as a
PayrollRunFailure row for each employee whose calculation raised.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayrollKernelError (base)
    |
    +-- ConfigurationError            (fatal to one payslip; run continues)
    |   +-- InvalidSlabConfigurationError
    |   +-- MissingTaxConfigurationError
    |   +-- UnresolvedComponentBaseError
    |   +-- InvalidExemptionRuleError
    |   +-- UnknownSectionError
    |   +-- InvalidConfigurationValueError
    |   +-- RejectedTaxConfigurationError
    |   +-- MissingSalaryStructureError
    |
    +-- DataIntegrityError            (blocks finalization)
    |   +-- PayslipReconciliationError
    |
    +-- StateError                    (rejected before any computation)
    |   +-- PayrollRunLockedError
    |   +-- PayrollRunAlreadyProcessingError
    |   +-- PayrollRunAlreadyExistsError
    |   +-- PayslipLockedError
    |   +-- InvalidStateTransitionError
    |   +-- ImmutabilityViolationError
    |
    +-- NotFoundError
    |   +-- PayrollRunNotFoundError
    |   +-- PayslipNotFoundError
    |
    +-- CurrencyError
    |   +-- InvalidCurrencyError
    |   +-- CurrencyMismatchError
    |
    +-- GatewayError
        +-- BackendResponseError
        +-- BackendUnavailableError

===============================================================================
HANDLING GUIDANCE
===============================================================================

ConfigurationError / DataIntegrityError raised while computing one employee's
payslip are caught by the run processor and recorded; the run continues.

StateError is raised by the run service before any computation starts and
propagates to the caller unchanged.

GatewayError wraps httpx transport failures and non-success backend
envelopes. Failures fetching the run snapshot abort the run; failures
fetching one employee's inputs fail that employee only.
"""

from decimal import Decimal
from typing import Any
from uuid import UUID


class PayrollKernelError(Exception):
    """
    Base exception for all payroll kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    identification.
    """

    code: str = "PAYROLL_KERNEL_ERROR"

    def details(self) -> dict[str, Any]:
        """Public attributes of the exception as a JSON-safe dict."""
        out: dict[str, Any] = {}
        for key, val in vars(self).items():
            if key.startswith("_"):
                continue
            if isinstance(val, (UUID, Decimal)):
                val = str(val)
            elif isinstance(val, (list, tuple)):
                val = [str(v) for v in val]
            out[key] = val
        return out


# Configuration exceptions


class ConfigurationError(PayrollKernelError):
    """Base exception for missing or invalid payroll configuration."""

    code: str = "CONFIGURATION_ERROR"


class InvalidSlabConfigurationError(ConfigurationError):
    """Slab table is unsorted, overlapping, non-contiguous or not open-ended."""

    code: str = "INVALID_SLAB_CONFIGURATION"

    def __init__(self, table: str, index: int, reason: str):
        self.table = table
        self.index = index
        self.reason = reason
        super().__init__(f"Invalid {table} slab at position {index}: {reason}")


class MissingTaxConfigurationError(ConfigurationError):
    """No tax configuration matches the company/jurisdiction/financial year."""

    code: str = "MISSING_TAX_CONFIGURATION"

    def __init__(
        self,
        company_id: str,
        country: str | None,
        state: str | None,
        period: str,
    ):
        self.company_id = company_id
        self.country = country
        self.state = state
        self.period = period
        super().__init__(
            f"No tax configuration for company {company_id} "
            f"(country={country}, state={state}) covering period {period}"
        )


class UnresolvedComponentBaseError(ConfigurationError):
    """A percentage component references a base not yet resolved."""

    code: str = "UNRESOLVED_COMPONENT_BASE"

    def __init__(self, component_name: str, percentage_of: str | None):
        self.component_name = component_name
        self.percentage_of = percentage_of
        super().__init__(
            f"Component '{component_name}' is a percentage of "
            f"'{percentage_of}', which is not resolved before it"
        )


class InvalidExemptionRuleError(ConfigurationError):
    """Exemption rule is of an unknown type or carries mismatched fields."""

    code: str = "INVALID_EXEMPTION_RULE"

    def __init__(self, allowance: str, rule_type: str | None, reason: str):
        self.allowance = allowance
        self.rule_type = rule_type
        self.reason = reason
        super().__init__(
            f"Invalid {allowance} exemption rule (type={rule_type}): {reason}"
        )


class UnknownSectionError(ConfigurationError):
    """Declaration or cap refers to a section outside the closed set."""

    code: str = "UNKNOWN_SECTION"

    def __init__(self, section: str):
        self.section = section
        super().__init__(f"Unknown tax exemption section: '{section}'")


class InvalidConfigurationValueError(ConfigurationError):
    """A configuration field has an invalid value."""

    code: str = "INVALID_CONFIGURATION_VALUE"

    def __init__(self, field: str, value: Any, reason: str):
        self.field = field
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid value for '{field}' ({value!r}): {reason}")


class RejectedTaxConfigurationError(ConfigurationError):
    """
    The configuration that applies to an employee failed validation.

    ``code`` is the code of the validation failure, so the employee's
    failure record reads as if the configuration had been parsed alone.
    """

    code: str = "INVALID_TAX_CONFIGURATION"

    def __init__(
        self,
        config_id: str | None,
        company_id: str,
        country: str | None,
        state: str | None,
        financial_year: str | None,
        error_code: str,
        reason: str,
    ):
        self.code = error_code
        self.config_id = config_id
        self.company_id = company_id
        self.country = country
        self.state = state
        self.financial_year = financial_year
        self.reason = reason
        super().__init__(
            f"Tax configuration {config_id} for company {company_id} "
            f"(country={country}, state={state}, financial_year={financial_year}) "
            f"is invalid: {reason}"
        )


class MissingSalaryStructureError(ConfigurationError):
    """Employee has no salary structure assigned."""

    code: str = "MISSING_SALARY_STRUCTURE"

    def __init__(self, employee_id: str):
        self.employee_id = employee_id
        super().__init__(f"No salary structure assigned to employee {employee_id}")


# Data integrity exceptions


class DataIntegrityError(PayrollKernelError):
    """Base exception for computed records that fail integrity checks."""

    code: str = "DATA_INTEGRITY_ERROR"


class PayslipReconciliationError(DataIntegrityError):
    """Payslip totals do not reconcile."""

    code: str = "PAYSLIP_RECONCILIATION_FAILED"

    def __init__(
        self,
        employee_id: str,
        check: str,
        expected: Decimal,
        actual: Decimal,
    ):
        self.employee_id = employee_id
        self.check = check
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Payslip for employee {employee_id} fails {check}: "
            f"expected {expected}, got {actual}"
        )


# State exceptions


class StateError(PayrollKernelError):
    """Base exception for operations not allowed in the current state."""

    code: str = "STATE_ERROR"


class PayrollRunLockedError(StateError):
    """Payroll run is locked and cannot be processed or modified."""

    code: str = "PAYROLL_RUN_LOCKED"

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Payroll run {run_id} is locked")


class PayrollRunAlreadyProcessingError(StateError):
    """Payroll run is already being processed."""

    code: str = "PAYROLL_RUN_ALREADY_PROCESSING"

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Payroll run {run_id} is already processing")


class PayrollRunAlreadyExistsError(StateError):
    """A payroll run already exists for the company and period."""

    code: str = "PAYROLL_RUN_ALREADY_EXISTS"

    def __init__(self, company_id: str, month: int, year: int):
        self.company_id = company_id
        self.month = month
        self.year = year
        super().__init__(
            f"Payroll run already exists for company {company_id} "
            f"period {year}-{month:02d}"
        )


class PayslipLockedError(StateError):
    """Payslip is locked and cannot be recomputed or changed."""

    code: str = "PAYSLIP_LOCKED"

    def __init__(self, payslip_id: str, status: str):
        self.payslip_id = payslip_id
        self.status = status
        super().__init__(f"Payslip {payslip_id} is {status} and cannot change")


class InvalidStateTransitionError(StateError):
    """Lifecycle transition is not permitted by the workflow."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, workflow: str, from_state: str, action: str):
        self.workflow = workflow
        self.from_state = from_state
        self.action = action
        super().__init__(
            f"{workflow}: action '{action}' not allowed from state '{from_state}'"
        )


class ImmutabilityViolationError(StateError):
    """
    Attempted to modify or delete an immutable record.

    Payslip financial fields, locked runs and failure records are immutable.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Lookup exceptions


class NotFoundError(PayrollKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class PayrollRunNotFoundError(NotFoundError):
    """Payroll run with given ID was not found."""

    code: str = "PAYROLL_RUN_NOT_FOUND"

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Payroll run not found: {run_id}")


class PayslipNotFoundError(NotFoundError):
    """Payslip with given ID was not found."""

    code: str = "PAYSLIP_NOT_FOUND"

    def __init__(self, payslip_id: str):
        self.payslip_id = payslip_id
        super().__init__(f"Payslip not found: {payslip_id}")


# Currency exceptions


class CurrencyError(PayrollKernelError):
    """Base exception for currency-related errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError):
    """Invalid ISO 4217 currency code provided."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: '{currency}'")


class CurrencyMismatchError(CurrencyError):
    """Attempted operation on mismatched currencies."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, currency1: str, currency2: str):
        self.currency1 = currency1
        self.currency2 = currency2
        super().__init__(f"Currency mismatch: {currency1} vs {currency2}")


# Gateway exceptions


class GatewayError(PayrollKernelError):
    """Base exception for backend transport and envelope failures."""

    code: str = "GATEWAY_ERROR"


class BackendResponseError(GatewayError):
    """Backend answered with a non-success status or envelope."""

    code: str = "BACKEND_RESPONSE_ERROR"

    def __init__(
        self,
        path: str,
        status_code: int,
        response_code: str | None = None,
        message: str | None = None,
    ):
        self.path = path
        self.status_code = status_code
        self.response_code = response_code
        self.message = message
        super().__init__(
            f"Backend error on {path}: HTTP {status_code}"
            + (f" [{response_code}]" if response_code else "")
            + (f" {message}" if message else "")
        )


class BackendUnavailableError(GatewayError):
    """Backend could not be reached."""

    code: str = "BACKEND_UNAVAILABLE"

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Backend unavailable on {path}: {reason}")
