"""
Runtime settings for the payroll engine.

Defines the process-level knobs (database, backend gateway, worker pool,
logging) with sensible defaults. Values come from the environment in
deployed processes and from plain dicts in tests:

    settings = PayrollSettings.from_env()
    settings = PayrollSettings.from_dict({"max_workers": 2})
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Self

from payroll_kernel.exceptions import InvalidConfigurationValueError
from payroll_kernel.logging_config import get_logger

logger = get_logger("config.settings")

ENV_PREFIX = "PAYROLL_"

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class PayrollSettings:
    """Process settings for run processing and the backend gateway."""

    # Persistence
    database_url: str = "sqlite://"
    db_echo: bool = False

    # Backend gateway
    backend_base_url: str = "http://localhost:8080"
    backend_token: str | None = None
    backend_timeout_seconds: float = 30.0
    backend_page_size: int = 100

    # Run processing
    max_workers: int = 4

    # Logging
    log_level: str = "INFO"

    # YAML run inputs (tax configurations and employees) used instead of
    # the backend when set
    input_fixture_path: Path | None = None

    def __post_init__(self):
        if not self.database_url:
            raise InvalidConfigurationValueError(
                "database_url", self.database_url, "must not be empty"
            )
        if not self.backend_base_url.startswith(("http://", "https://")):
            raise InvalidConfigurationValueError(
                "backend_base_url", self.backend_base_url, "must be an http(s) URL"
            )
        if self.backend_timeout_seconds <= 0:
            raise InvalidConfigurationValueError(
                "backend_timeout_seconds", self.backend_timeout_seconds, "must be positive"
            )
        if self.backend_page_size <= 0:
            raise InvalidConfigurationValueError(
                "backend_page_size", self.backend_page_size, "must be positive"
            )
        if self.max_workers <= 0:
            raise InvalidConfigurationValueError(
                "max_workers", self.max_workers, "must be positive"
            )

        self.log_level = self.log_level.upper()
        if self.log_level not in VALID_LOG_LEVELS:
            raise InvalidConfigurationValueError(
                "log_level", self.log_level, f"must be one of {sorted(VALID_LOG_LEVELS)}"
            )

        if self.input_fixture_path is not None and not isinstance(self.input_fixture_path, Path):
            self.input_fixture_path = Path(self.input_fixture_path)

        logger.info(
            "payroll_settings_initialized",
            extra={
                "database_dialect": self.database_url.split(":", 1)[0],
                "backend_base_url": self.backend_base_url,
                "backend_timeout_seconds": self.backend_timeout_seconds,
                "max_workers": self.max_workers,
                "log_level": self.log_level,
            },
        )

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.log_level)

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Self:
        """Create settings from a dict; unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise InvalidConfigurationValueError(
                "settings", unknown, "unknown setting keys"
            )
        return cls(**dict(data))

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Self:
        """
        Create settings from ``PAYROLL_*`` environment variables.

        ``PAYROLL_MAX_WORKERS=8`` sets ``max_workers``; unset variables keep
        their defaults.
        """
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {}
        for f in fields(cls):
            raw = env.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None:
                continue
            data[f.name] = _coerce(f.name, raw, f.default)
        logger.info(
            "payroll_settings_loading_from_env",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)


def _coerce(name: str, raw: str, default: Any) -> Any:
    """Convert an environment string to the type of the field's default."""
    try:
        if isinstance(default, bool):
            if raw.lower() in ("1", "true", "yes", "on"):
                return True
            if raw.lower() in ("0", "false", "no", "off"):
                return False
            raise ValueError(raw)
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except ValueError:
        raise InvalidConfigurationValueError(name, raw, "cannot parse value") from None
    if name == "input_fixture_path":
        return Path(raw)
    return raw
