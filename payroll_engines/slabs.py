"""
Slab Engine - Evaluate banded income tax and flat-amount slab tables.

Two evaluation modes over an ordered, contiguous slab table:

* marginal (income tax): each slab taxes only the part of the amount that
  falls inside it, at its own rate.
* flat (professional tax): the single slab containing the amount yields its
  fixed charge.

Rates are percentages (``Decimal("5")`` means 5%). Results are unrounded;
the payslip assembler rounds to the currency's minor unit.

Usage:
    from decimal import Decimal
    from payroll_engines.slabs import IncomeTaxSlab, evaluate_marginal

    slabs = (
        IncomeTaxSlab(Decimal("0"), Decimal("250000"), Decimal("0")),
        IncomeTaxSlab(Decimal("250000"), Decimal("500000"), Decimal("5")),
        IncomeTaxSlab(Decimal("500000"), None, Decimal("30")),
    )
    evaluate_marginal(slabs, Decimal("600000"))  # Decimal("42500")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from payroll_kernel.exceptions import InvalidSlabConfigurationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.slabs")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class IncomeTaxSlab:
    """A marginal-rate band. ``upper=None`` means open-ended."""

    lower: Decimal
    upper: Decimal | None
    rate: Decimal  # percent


@dataclass(frozen=True)
class ProfessionalTaxSlab:
    """A flat-charge band. ``upper=None`` means open-ended."""

    lower: Decimal
    upper: Decimal | None
    amount: Decimal


Slab = IncomeTaxSlab | ProfessionalTaxSlab


def validate_slabs(slabs: Sequence[Slab], table: str) -> None:
    """
    Check that a slab table is usable.

    Requirements:
        - at least one slab
        - first slab starts at a non-negative lower bound
        - each slab has upper > lower
        - each slab starts exactly where the previous one ended
        - only the last slab is open-ended, and it must be
        - rates lie within [0, 100]; flat amounts are non-negative

    Raises:
        InvalidSlabConfigurationError: naming the table and offending slab.
    """
    if not slabs:
        raise InvalidSlabConfigurationError(table, 0, "slab table is empty")

    if slabs[0].lower < _ZERO:
        raise InvalidSlabConfigurationError(table, 0, "lower bound is negative")

    last = len(slabs) - 1
    for i, slab in enumerate(slabs):
        if isinstance(slab, IncomeTaxSlab):
            if slab.rate < _ZERO or slab.rate > _HUNDRED:
                raise InvalidSlabConfigurationError(
                    table, i, f"rate {slab.rate} outside 0-100"
                )
        elif slab.amount < _ZERO:
            raise InvalidSlabConfigurationError(
                table, i, f"amount {slab.amount} is negative"
            )

        if slab.upper is None:
            if i != last:
                raise InvalidSlabConfigurationError(
                    table, i, "open-ended slab is not the last slab"
                )
        elif slab.upper <= slab.lower:
            raise InvalidSlabConfigurationError(
                table, i, f"upper {slab.upper} is not above lower {slab.lower}"
            )

        if i > 0:
            prev_upper = slabs[i - 1].upper
            if prev_upper is not None and slab.lower < prev_upper:
                raise InvalidSlabConfigurationError(
                    table, i, f"overlaps previous slab ending at {prev_upper}"
                )
            if prev_upper is not None and slab.lower > prev_upper:
                raise InvalidSlabConfigurationError(
                    table, i, f"gap after previous slab ending at {prev_upper}"
                )

    if slabs[last].upper is not None:
        raise InvalidSlabConfigurationError(
            table, last, "last slab must be open-ended"
        )


def evaluate_marginal(slabs: Sequence[IncomeTaxSlab], amount: Decimal) -> Decimal:
    """
    Marginal-rate liability on ``amount``.

    Sum over slabs of ``(min(amount, upper) - lower) * rate``, clipped at zero
    for slabs entirely above the amount.
    """
    tax = _ZERO
    for slab in slabs:
        if amount <= slab.lower:
            break
        top = amount if slab.upper is None else min(amount, slab.upper)
        tax += (top - slab.lower) * slab.rate / _HUNDRED

    logger.debug("marginal_slabs_evaluated", extra={
        "amount": str(amount),
        "slab_count": len(slabs),
        "liability": str(tax),
    })
    return tax


def evaluate_flat(slabs: Sequence[ProfessionalTaxSlab], amount: Decimal) -> Decimal:
    """
    Flat charge of the slab containing ``amount``.

    A value equal to a slab's upper bound belongs to that slab. Amounts below
    the first slab yield zero.
    """
    for slab in slabs:
        if amount < slab.lower:
            break
        if slab.upper is None or amount <= slab.upper:
            return slab.amount
    return _ZERO
