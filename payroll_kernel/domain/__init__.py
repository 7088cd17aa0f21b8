"""
Pure domain layer: money, clocks and workflow definitions.  No ORM, no I/O.
"""

from payroll_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from payroll_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from payroll_kernel.domain.values import Currency, Money
from payroll_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "Currency",
    "CurrencyInfo",
    "CurrencyRegistry",
    "DeterministicClock",
    "Guard",
    "Money",
    "SystemClock",
    "Transition",
    "Workflow",
]
