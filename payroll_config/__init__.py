"""
Payroll configuration: tax configuration schema, loaders and runtime
settings.

``find_tax_configuration`` is the single place a payslip calculation picks
the configuration it runs under.
"""

from __future__ import annotations

from typing import Iterable

from payroll_config.loader import (
    compute_checksum,
    load_tax_configurations,
    parse_backend_tax_configuration,
    parse_backend_tax_configurations,
    parse_tax_configuration,
)
from payroll_config.schema import (
    FinancialYear,
    RejectedTaxConfiguration,
    SectionKey,
    TaxConfiguration,
    TdsNormalization,
)
from payroll_config.settings import PayrollSettings
from payroll_kernel.exceptions import MissingTaxConfigurationError
from payroll_kernel.logging_config import get_logger

__all__ = [
    "FinancialYear",
    "PayrollSettings",
    "RejectedTaxConfiguration",
    "SectionKey",
    "TaxConfiguration",
    "TdsNormalization",
    "compute_checksum",
    "find_tax_configuration",
    "load_tax_configurations",
    "parse_backend_tax_configuration",
    "parse_backend_tax_configurations",
    "parse_tax_configuration",
]

logger = get_logger("config")


def _norm(value: str | None) -> str | None:
    return value.strip().lower() if value else None


def find_tax_configuration(
    configs: Iterable[TaxConfiguration | RejectedTaxConfiguration],
    *,
    company_id: str,
    country: str | None,
    state: str | None,
    month: int,
    year: int,
) -> TaxConfiguration:
    """
    Select the configuration for a company, jurisdiction and pay period.

    Candidates must be active, belong to the company, match the country and
    cover the period's financial year. An exact state match is preferred;
    a configuration without a state applies country-wide.

    Rejected configurations compete under the same rules; when one of them
    wins, its validation error is raised.

    Raises:
        MissingTaxConfigurationError: no candidate matches. Nothing is
            defaulted.
        RejectedTaxConfigurationError: the matching configuration failed
            validation.
    """
    state_key = _norm(state)
    exact: TaxConfiguration | RejectedTaxConfiguration | None = None
    country_wide: TaxConfiguration | RejectedTaxConfiguration | None = None

    for config in configs:
        if not config.is_active or config.company_id != company_id:
            continue
        if country is not None and _norm(config.country) != _norm(country):
            continue
        if not config.covers(month, year):
            continue
        config_state = _norm(config.state)
        if config_state is None:
            country_wide = country_wide or config
        elif config_state == state_key:
            exact = exact or config

    chosen = exact or country_wide
    if chosen is None:
        period_label = f"{year}-{month:02d}"
        logger.warning(
            "tax_configuration_not_found",
            extra={
                "company_id": company_id,
                "country": country,
                "state": state,
                "period": period_label,
            },
        )
        raise MissingTaxConfigurationError(company_id, country, state, period_label)

    if isinstance(chosen, RejectedTaxConfiguration):
        logger.warning(
            "tax_configuration_selected_is_invalid",
            extra={
                "config_id": chosen.id,
                "financial_year": chosen.financial_year,
                "state": chosen.state,
                "error_code": chosen.error_code,
            },
        )
        raise chosen.error()

    logger.debug(
        "tax_configuration_selected",
        extra={
            "config_id": chosen.id,
            "financial_year": chosen.financial_year,
            "state": chosen.state,
            "checksum": chosen.checksum,
        },
    )
    return chosen
