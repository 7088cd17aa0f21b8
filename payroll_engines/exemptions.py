"""
Allowance Exemption Engine - Tax-exempt portions of housing and travel
allowances.

Each allowance has a rule chosen by configuration. Rules are tagged variants;
evaluation matches on the variant, so every rule type carries exactly the
fields it needs and nothing else.

Housing rules:
    HousingPercentageOfBasic  min(allowance, rent - min_rent% * basic, max% * basic)
                              (without min_rent%: min(allowance, max% * basic))
    FixedAmount               min(allowance, amount)
    ActualRent                min(allowance, rent paid)

Travel rules:
    TravelPercentageOfBasic   min(allowance, percentage% * basic)
    FixedAmount               min(allowance, amount)
    ActualExpense             min(allowance, expense incurred)

Every exemption is floored at zero and never exceeds the allowance actually
disbursed. Missing rent/expense inputs count as zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from payroll_kernel.exceptions import InvalidExemptionRuleError
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.exemptions")

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")


class ExemptionRuleType(str, Enum):
    """Rule type discriminators as they appear in configuration."""

    PERCENTAGE_OF_BASIC = "percentage_of_basic"
    FIXED_AMOUNT = "fixed_amount"
    ACTUAL_RENT = "actual_rent"
    ACTUAL_EXPENSE = "actual_expense"


@dataclass(frozen=True)
class HousingPercentageOfBasic:
    max_percentage: Decimal
    min_rent_percentage: Decimal | None = None

    rule_type = ExemptionRuleType.PERCENTAGE_OF_BASIC


@dataclass(frozen=True)
class TravelPercentageOfBasic:
    percentage: Decimal

    rule_type = ExemptionRuleType.PERCENTAGE_OF_BASIC


@dataclass(frozen=True)
class FixedAmount:
    amount: Decimal

    rule_type = ExemptionRuleType.FIXED_AMOUNT


@dataclass(frozen=True)
class ActualRent:
    rule_type = ExemptionRuleType.ACTUAL_RENT


@dataclass(frozen=True)
class ActualExpense:
    rule_type = ExemptionRuleType.ACTUAL_EXPENSE


HousingExemptionRule = HousingPercentageOfBasic | FixedAmount | ActualRent
TravelExemptionRule = TravelPercentageOfBasic | FixedAmount | ActualExpense


def evaluate_housing_exemption(
    rule: HousingExemptionRule,
    *,
    allowance: Decimal,
    basic: Decimal,
    rent_paid: Decimal | None = None,
) -> Decimal:
    """Exempt portion of the housing allowance for one period."""
    rent = rent_paid if rent_paid is not None else _ZERO

    match rule:
        case HousingPercentageOfBasic(max_percentage=max_pct, min_rent_percentage=None):
            exemption = min(allowance, basic * max_pct / _HUNDRED)
        case HousingPercentageOfBasic(max_percentage=max_pct, min_rent_percentage=min_rent_pct):
            exemption = min(
                allowance,
                rent - basic * min_rent_pct / _HUNDRED,
                basic * max_pct / _HUNDRED,
            )
        case FixedAmount(amount=amount):
            exemption = min(allowance, amount)
        case ActualRent():
            exemption = min(allowance, rent)
        case _:
            raise InvalidExemptionRuleError(
                "housing", getattr(rule, "rule_type", None), "not a housing rule"
            )

    exemption = max(exemption, _ZERO)
    logger.debug("housing_exemption_evaluated", extra={
        "rule_type": rule.rule_type.value,
        "allowance": str(allowance),
        "basic": str(basic),
        "rent_paid": str(rent),
        "exemption": str(exemption),
    })
    return exemption


def evaluate_travel_exemption(
    rule: TravelExemptionRule,
    *,
    allowance: Decimal,
    basic: Decimal,
    expense_incurred: Decimal | None = None,
) -> Decimal:
    """Exempt portion of the travel allowance for one period."""
    expense = expense_incurred if expense_incurred is not None else _ZERO

    match rule:
        case TravelPercentageOfBasic(percentage=pct):
            exemption = min(allowance, basic * pct / _HUNDRED)
        case FixedAmount(amount=amount):
            exemption = min(allowance, amount)
        case ActualExpense():
            exemption = min(allowance, expense)
        case _:
            raise InvalidExemptionRuleError(
                "travel", getattr(rule, "rule_type", None), "not a travel rule"
            )

    exemption = max(exemption, _ZERO)
    logger.debug("travel_exemption_evaluated", extra={
        "rule_type": rule.rule_type.value,
        "allowance": str(allowance),
        "basic": str(basic),
        "expense_incurred": str(expense),
        "exemption": str(exemption),
    })
    return exemption
