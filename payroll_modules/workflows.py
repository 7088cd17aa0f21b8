"""Payroll Workflows.

State machines for payroll runs, payslips and tax declarations.
"""

from payroll_kernel.domain.workflow import Guard, Transition, Workflow
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

ALL_EMPLOYEES_TERMINAL = Guard(
    name="all_employees_terminal",
    description="Every employee in the run has a payslip or a failure record",
)

RUN_NOT_LOCKED = Guard(
    name="run_not_locked",
    description="The payroll run owning the payslip is not locked",
)

logger.info(
    "payroll_workflow_guards_defined",
    extra={"guards": [ALL_EMPLOYEES_TERMINAL.name, RUN_NOT_LOCKED.name]},
)


# -----------------------------------------------------------------------------
# Payroll Run Workflow
# -----------------------------------------------------------------------------

PAYROLL_RUN_WORKFLOW = Workflow(
    name="payroll_run",
    description="Monthly payroll run for one company",
    initial_state="draft",
    states=("draft", "processing", "completed", "failed", "locked"),
    transitions=(
        Transition("draft", "processing", action="process"),
        Transition("completed", "processing", action="process"),
        Transition("failed", "processing", action="process"),
        Transition("processing", "completed", action="complete"),
        Transition("processing", "failed", action="fail"),
        Transition("completed", "locked", action="lock", guard=ALL_EMPLOYEES_TERMINAL),
        Transition("failed", "locked", action="lock", guard=ALL_EMPLOYEES_TERMINAL),
    ),
    terminal_states=("locked",),
)


# -----------------------------------------------------------------------------
# Payslip Workflow
# -----------------------------------------------------------------------------

PAYSLIP_WORKFLOW = Workflow(
    name="payslip",
    description="Payslip review and lock",
    initial_state="generated",
    states=("generated", "approved", "locked"),
    transitions=(
        Transition("generated", "approved", action="approve", guard=RUN_NOT_LOCKED),
        Transition("generated", "locked", action="lock"),
        Transition("approved", "locked", action="lock"),
    ),
    terminal_states=("locked",),
)


# -----------------------------------------------------------------------------
# Tax Declaration Workflow
# -----------------------------------------------------------------------------

TAX_DECLARATION_WORKFLOW = Workflow(
    name="tax_declaration",
    description="Employee tax-saving declaration for one financial year",
    initial_state="draft",
    states=("draft", "submitted", "verified", "rejected"),
    transitions=(
        Transition("draft", "submitted", action="submit"),
        Transition("submitted", "verified", action="verify"),
        Transition("submitted", "rejected", action="reject"),
        Transition("rejected", "draft", action="revise"),
    ),
    terminal_states=("verified",),
)
