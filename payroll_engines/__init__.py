"""
Pure statutory calculation engines.

    slabs          -- marginal and flat slab evaluation, slab validation
    contributions  -- capped employee/employer contributions
    exemptions     -- allowance exemption rules
    loans          -- EMI and repayment schedules

Engines take Decimals and return unrounded Decimals.  No I/O, no
persistence, no rounding policy.
"""

from payroll_engines.contributions import (
    ContributionBase,
    ContributionResult,
    ContributionScheme,
    calculate_contribution,
)
from payroll_engines.exemptions import (
    ActualExpense,
    ActualRent,
    ExemptionRuleType,
    FixedAmount,
    HousingPercentageOfBasic,
    TravelPercentageOfBasic,
    evaluate_housing_exemption,
    evaluate_travel_exemption,
)
from payroll_engines.loans import RepaymentInstalment, calculate_emi, repayment_schedule
from payroll_engines.slabs import (
    IncomeTaxSlab,
    ProfessionalTaxSlab,
    evaluate_flat,
    evaluate_marginal,
    validate_slabs,
)

__all__ = [
    "ActualExpense",
    "ActualRent",
    "ContributionBase",
    "ContributionResult",
    "ContributionScheme",
    "ExemptionRuleType",
    "FixedAmount",
    "HousingPercentageOfBasic",
    "IncomeTaxSlab",
    "ProfessionalTaxSlab",
    "RepaymentInstalment",
    "TravelPercentageOfBasic",
    "calculate_contribution",
    "calculate_emi",
    "evaluate_flat",
    "evaluate_housing_exemption",
    "evaluate_marginal",
    "evaluate_travel_exemption",
    "repayment_schedule",
    "validate_slabs",
]
