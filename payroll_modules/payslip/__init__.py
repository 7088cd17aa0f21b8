"""Payslip computation, persistence and lifecycle."""

from payroll_modules.payslip.models import (
    ExemptionSummary,
    PayPeriod,
    Payslip,
    PayslipLine,
    PayslipStatus,
)

__all__ = [
    "ExemptionSummary",
    "PayPeriod",
    "Payslip",
    "PayslipLine",
    "PayslipStatus",
]
