"""
Configuration Loader (``payroll_config.loader``).

Responsibility
--------------
Parses tax configurations into typed ``payroll_config.schema`` instances
from two sources:

* YAML files (snake_case keys, nested contribution schemes), loaded with
  ``yaml.safe_load``.
* Backend JSON (camelCase keys, flat contribution fields), as returned by
  ``GET /api/payroll/tax-configurations/company/{companyId}``.

Both shapes are normalized into one canonical dict and parsed by the same
functions, so every rule is validated identically.

Invariants enforced
-------------------
* Slab tables, exemption rules and section keys are validated here, at
  parse time. A configuration that parses is safe to calculate with.
* Exemption rules may only carry the fields of their own type.
* ``compute_checksum`` produces a deterministic SHA-256 hash recorded on
  every payslip calculated under the configuration.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid content -> a ``ConfigurationError`` subclass naming the field.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from payroll_config.schema import (
    RejectedTaxConfiguration,
    SectionKey,
    TaxConfiguration,
    TdsNormalization,
)
from payroll_engines.contributions import ContributionBase, ContributionScheme
from payroll_engines.exemptions import (
    ActualExpense,
    ActualRent,
    ExemptionRuleType,
    FixedAmount,
    HousingExemptionRule,
    HousingPercentageOfBasic,
    TravelExemptionRule,
    TravelPercentageOfBasic,
)
from payroll_engines.slabs import IncomeTaxSlab, ProfessionalTaxSlab
from payroll_kernel.exceptions import (
    InvalidConfigurationValueError,
    InvalidExemptionRuleError,
    InvalidSlabConfigurationError,
    PayrollKernelError,
)
from payroll_kernel.logging_config import get_logger

logger = get_logger("config.loader")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


# ---------------------------------------------------------------------------
# Scalars
# ---------------------------------------------------------------------------


def parse_decimal(value: Any, field: str) -> Decimal:
    """Parse a number from YAML/JSON into Decimal via its string form."""
    if isinstance(value, bool) or value is None:
        raise InvalidConfigurationValueError(field, value, "expected a number")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise InvalidConfigurationValueError(field, value, "expected a number") from None


def _optional_decimal(value: Any, field: str) -> Decimal | None:
    return None if value is None else parse_decimal(value, field)


# ---------------------------------------------------------------------------
# Slabs
# ---------------------------------------------------------------------------


def _slab_bounds(data: dict[str, Any], table: str, index: int) -> tuple[Decimal, Decimal | None]:
    if not isinstance(data, dict):
        raise InvalidSlabConfigurationError(table, index, "slab must be a mapping")
    lower = data.get("lower", data.get("from"))
    if lower is None:
        raise InvalidSlabConfigurationError(table, index, "missing lower bound")
    upper = data.get("upper", data.get("to"))
    return (
        parse_decimal(lower, f"{table}[{index}].lower"),
        _optional_decimal(upper, f"{table}[{index}].upper"),
    )


def parse_income_tax_slabs(items: list[dict[str, Any]] | None) -> tuple[IncomeTaxSlab, ...]:
    slabs = []
    for i, item in enumerate(items or ()):
        lower, upper = _slab_bounds(item, "income_tax", i)
        if item.get("rate") is None:
            raise InvalidSlabConfigurationError("income_tax", i, "missing rate")
        slabs.append(IncomeTaxSlab(
            lower=lower,
            upper=upper,
            rate=parse_decimal(item["rate"], f"income_tax[{i}].rate"),
        ))
    return tuple(slabs)


def parse_professional_tax_slabs(
    items: list[dict[str, Any]] | None,
) -> tuple[ProfessionalTaxSlab, ...]:
    slabs = []
    for i, item in enumerate(items or ()):
        lower, upper = _slab_bounds(item, "professional_tax", i)
        if item.get("amount") is None:
            raise InvalidSlabConfigurationError("professional_tax", i, "missing amount")
        slabs.append(ProfessionalTaxSlab(
            lower=lower,
            upper=upper,
            amount=parse_decimal(item["amount"], f"professional_tax[{i}].amount"),
        ))
    return tuple(slabs)


# ---------------------------------------------------------------------------
# Contribution schemes
# ---------------------------------------------------------------------------


def parse_contribution_scheme(
    data: dict[str, Any] | None,
    default_base: ContributionBase,
    name: str,
) -> ContributionScheme:
    """Parse ``{enabled, employer_rate, employee_rate, max_salary, base}``."""
    if not data or not data.get("enabled", False):
        return ContributionScheme.disabled(default_base)

    base_value = data.get("base", default_base.value)
    try:
        base = ContributionBase(base_value)
    except ValueError:
        raise InvalidConfigurationValueError(
            f"{name}.base", base_value, "expected 'basic' or 'gross'"
        ) from None

    return ContributionScheme(
        enabled=True,
        employer_rate=parse_decimal(data.get("employer_rate", 0), f"{name}.employer_rate"),
        employee_rate=parse_decimal(data.get("employee_rate", 0), f"{name}.employee_rate"),
        max_salary=_optional_decimal(data.get("max_salary"), f"{name}.max_salary"),
        base=base,
    )


# ---------------------------------------------------------------------------
# Exemption rules
# ---------------------------------------------------------------------------

_HOUSING_FIELDS: dict[ExemptionRuleType, tuple[frozenset[str], frozenset[str]]] = {
    # type: (required, optional)
    ExemptionRuleType.PERCENTAGE_OF_BASIC: (
        frozenset({"max_percentage"}), frozenset({"min_rent_percentage"}),
    ),
    ExemptionRuleType.FIXED_AMOUNT: (frozenset({"amount"}), frozenset()),
    ExemptionRuleType.ACTUAL_RENT: (frozenset(), frozenset()),
}

_TRAVEL_FIELDS: dict[ExemptionRuleType, tuple[frozenset[str], frozenset[str]]] = {
    ExemptionRuleType.PERCENTAGE_OF_BASIC: (frozenset({"percentage"}), frozenset()),
    ExemptionRuleType.FIXED_AMOUNT: (frozenset({"amount"}), frozenset()),
    ExemptionRuleType.ACTUAL_EXPENSE: (frozenset(), frozenset()),
}


def _checked_rule_fields(
    data: dict[str, Any],
    allowance: str,
    table: dict[ExemptionRuleType, tuple[frozenset[str], frozenset[str]]],
) -> tuple[ExemptionRuleType, dict[str, Any]]:
    raw_type = data.get("type")
    try:
        rule_type = ExemptionRuleType(raw_type)
    except ValueError:
        raise InvalidExemptionRuleError(allowance, raw_type, "unknown rule type") from None
    if rule_type not in table:
        raise InvalidExemptionRuleError(
            allowance, raw_type, f"rule type not applicable to {allowance} allowance"
        )

    required, optional = table[rule_type]
    present = {k: v for k, v in data.items() if k != "type" and v is not None}

    foreign = sorted(set(present) - required - optional)
    if foreign:
        raise InvalidExemptionRuleError(
            allowance, raw_type, f"fields not valid for this rule type: {foreign}"
        )
    missing = sorted(required - set(present))
    if missing:
        raise InvalidExemptionRuleError(
            allowance, raw_type, f"missing required fields: {missing}"
        )
    return rule_type, present


def parse_housing_rule(data: dict[str, Any] | None) -> HousingExemptionRule | None:
    if not data:
        return None
    rule_type, fields = _checked_rule_fields(data, "housing", _HOUSING_FIELDS)
    match rule_type:
        case ExemptionRuleType.PERCENTAGE_OF_BASIC:
            return HousingPercentageOfBasic(
                max_percentage=parse_decimal(fields["max_percentage"], "housing.max_percentage"),
                min_rent_percentage=_optional_decimal(
                    fields.get("min_rent_percentage"), "housing.min_rent_percentage"
                ),
            )
        case ExemptionRuleType.FIXED_AMOUNT:
            return FixedAmount(amount=parse_decimal(fields["amount"], "housing.amount"))
        case ExemptionRuleType.ACTUAL_RENT:
            return ActualRent()
    raise InvalidExemptionRuleError("housing", rule_type, "unhandled rule type")


def parse_travel_rule(data: dict[str, Any] | None) -> TravelExemptionRule | None:
    if not data:
        return None
    rule_type, fields = _checked_rule_fields(data, "travel", _TRAVEL_FIELDS)
    match rule_type:
        case ExemptionRuleType.PERCENTAGE_OF_BASIC:
            return TravelPercentageOfBasic(
                percentage=parse_decimal(fields["percentage"], "travel.percentage"),
            )
        case ExemptionRuleType.FIXED_AMOUNT:
            return FixedAmount(amount=parse_decimal(fields["amount"], "travel.amount"))
        case ExemptionRuleType.ACTUAL_EXPENSE:
            return ActualExpense()
    raise InvalidExemptionRuleError("travel", rule_type, "unhandled rule type")


def parse_tax_exemptions(data: dict[str, Any] | None) -> dict[SectionKey, Decimal]:
    """Section caps; unknown section names raise ``UnknownSectionError``."""
    caps: dict[SectionKey, Decimal] = {}
    for key, value in (data or {}).items():
        section = SectionKey.parse(key)
        if value is None:
            continue
        caps[section] = parse_decimal(value, f"tax_exemptions.{section.value}")
    return caps


# ---------------------------------------------------------------------------
# Tax configuration
# ---------------------------------------------------------------------------


def parse_tax_configuration(data: dict[str, Any]) -> TaxConfiguration:
    """
    Parse a canonical (snake_case) tax configuration dict.

    Raises:
        KeyError: if company_id, country or financial_year is missing.
        ConfigurationError: for any invalid slab, rule, section or value.
    """
    normalization = data.get("tds_normalization", TdsNormalization.ANNUALIZED.value)
    try:
        tds_normalization = TdsNormalization(normalization)
    except ValueError:
        raise InvalidConfigurationValueError(
            "tds_normalization", normalization, "expected 'annualized' or 'per_period'"
        ) from None

    config = TaxConfiguration(
        id=str(data["id"]) if data.get("id") is not None else None,
        company_id=str(data["company_id"]),
        country=data["country"],
        state=data.get("state") or data.get("province"),
        financial_year=str(data["financial_year"]),
        currency=data.get("currency", "INR"),
        income_tax_enabled=bool(data.get("income_tax_enabled", True)),
        income_tax_slabs=parse_income_tax_slabs(data.get("income_tax_slabs")),
        social_security=parse_contribution_scheme(
            data.get("social_security"), ContributionBase.BASIC, "social_security"
        ),
        health_insurance=parse_contribution_scheme(
            data.get("health_insurance"), ContributionBase.GROSS, "health_insurance"
        ),
        professional_tax_enabled=bool(data.get("professional_tax_enabled", False)),
        professional_tax_slabs=parse_professional_tax_slabs(
            data.get("professional_tax_slabs")
        ),
        housing_allowance_exemption=parse_housing_rule(
            data.get("housing_allowance_exemption")
        ),
        travel_allowance_exemption=parse_travel_rule(
            data.get("travel_allowance_exemption")
        ),
        standard_deduction=parse_decimal(
            data.get("standard_deduction", 0), "standard_deduction"
        ),
        tax_exemptions=parse_tax_exemptions(data.get("tax_exemptions")),
        pay_periods_per_year=int(data.get("pay_periods_per_year", 12)),
        tds_normalization=tds_normalization,
        financial_year_start_month=data.get("financial_year_start_month"),
        is_active=bool(data.get("is_active", True)),
        checksum=compute_checksum(data),
    )

    logger.info(
        "tax_configuration_parsed",
        extra={
            "config_id": config.id,
            "company_id": config.company_id,
            "country": config.country,
            "state": config.state,
            "financial_year": config.financial_year,
            "checksum": config.checksum,
        },
    )
    return config


def _scheme_from_backend(data: dict[str, Any], prefix: str) -> dict[str, Any]:
    return {
        "enabled": data.get(f"{prefix}Enabled", False),
        "employer_rate": data.get(f"{prefix}EmployerRate", 0),
        "employee_rate": data.get(f"{prefix}EmployeeRate", 0),
        "max_salary": data.get(f"{prefix}MaxSalary"),
    }


def _rule_from_backend(data: dict[str, Any] | None) -> dict[str, Any] | None:
    if not data:
        return None
    renames = {
        "maxPercentage": "max_percentage",
        "minRentPercentage": "min_rent_percentage",
    }
    return {
        renames.get(k, k): v for k, v in data.items() if not k.startswith("_")
    }


def backend_to_canonical(data: dict[str, Any]) -> dict[str, Any]:
    """Map a backend (camelCase) tax configuration onto the canonical dict."""
    canonical: dict[str, Any] = {
        "id": data.get("id") or data.get("_id"),
        "company_id": data["companyId"],
        "country": data["country"],
        "state": data.get("state") or data.get("province"),
        "financial_year": data["financialYear"],
        "income_tax_enabled": data.get("incomeTaxEnabled", True),
        "income_tax_slabs": data.get("incomeTaxSlabs") or [],
        "social_security": _scheme_from_backend(data, "socialSecurity"),
        "health_insurance": _scheme_from_backend(data, "healthInsurance"),
        "professional_tax_enabled": data.get("professionalTaxEnabled", False),
        "professional_tax_slabs": data.get("professionalTaxSlabs") or [],
        "housing_allowance_exemption": _rule_from_backend(
            data.get("housingAllowanceExemptionRules")
        ),
        "travel_allowance_exemption": _rule_from_backend(
            data.get("travelAllowanceExemptionRules")
        ),
        "standard_deduction": data.get("standardDeduction") or 0,
        "tax_exemptions": data.get("taxExemptions") or {},
        "is_active": data.get("isActive", True),
    }
    optional = {
        "currency": "currency",
        "payPeriodsPerYear": "pay_periods_per_year",
        "tdsNormalization": "tds_normalization",
        "financialYearStartMonth": "financial_year_start_month",
    }
    for source, target in optional.items():
        if data.get(source) is not None:
            canonical[target] = data[source]
    return canonical


def parse_backend_tax_configuration(data: dict[str, Any]) -> TaxConfiguration:
    """Parse one tax configuration as returned by the backend."""
    return parse_tax_configuration(backend_to_canonical(data))


def parse_backend_tax_configurations(
    records: list[dict[str, Any]],
) -> tuple[tuple[TaxConfiguration, ...], tuple[RejectedTaxConfiguration, ...]]:
    """
    Parse a company's backend configurations record by record.

    A record that fails validation is returned as a
    ``RejectedTaxConfiguration`` carrying its scope and error instead of
    failing the others.
    """
    valid: list[TaxConfiguration] = []
    rejected: list[RejectedTaxConfiguration] = []
    for record in records:
        canonical = backend_to_canonical(record)
        try:
            valid.append(parse_tax_configuration(canonical))
        except PayrollKernelError as exc:
            logger.error(
                "tax_configuration_rejected",
                extra={
                    "config_id": canonical.get("id"),
                    "company_id": canonical.get("company_id"),
                    "country": canonical.get("country"),
                    "state": canonical.get("state"),
                    "financial_year": canonical.get("financial_year"),
                    "error_code": exc.code,
                    "error": str(exc),
                },
            )
            rejected.append(RejectedTaxConfiguration.from_exception(canonical, exc))
    return tuple(valid), tuple(rejected)


def load_tax_configurations(path: Path) -> list[TaxConfiguration]:
    """
    Load all tax configurations from a YAML file.

    The file holds a top-level ``tax_configurations`` list; each entry is a
    canonical configuration dict.
    """
    data = load_yaml_file(path)
    entries = data.get("tax_configurations", [])
    configs = [parse_tax_configuration(entry) for entry in entries]
    logger.info(
        "tax_configurations_loaded",
        extra={"path": str(path), "count": len(configs)},
    )
    return configs
