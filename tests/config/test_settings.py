"""Tests for PayrollSettings."""

import logging
from pathlib import Path

import pytest

from payroll_config import PayrollSettings
from payroll_kernel.exceptions import InvalidConfigurationValueError


class TestDefaults:

    def test_with_defaults(self):
        settings = PayrollSettings.with_defaults()

        assert settings.database_url == "sqlite://"
        assert settings.max_workers == 4
        assert settings.backend_page_size == 100
        assert settings.log_level_value == logging.INFO

    def test_log_level_is_normalized(self):
        assert PayrollSettings(log_level="debug").log_level == "DEBUG"


class TestFromDict:

    def test_overrides(self):
        settings = PayrollSettings.from_dict({"max_workers": 2, "backend_token": "t"})
        assert settings.max_workers == 2
        assert settings.backend_token == "t"

    def test_unknown_keys_rejected(self):
        with pytest.raises(InvalidConfigurationValueError, match="unknown setting keys"):
            PayrollSettings.from_dict({"max_wrokers": 2})

    def test_path_is_coerced(self):
        settings = PayrollSettings.from_dict({"input_fixture_path": "fixtures/june.yaml"})
        assert settings.input_fixture_path == Path("fixtures/june.yaml")


class TestFromEnv:

    def test_reads_prefixed_variables(self):
        settings = PayrollSettings.from_env({
            "PAYROLL_MAX_WORKERS": "8",
            "PAYROLL_DB_ECHO": "true",
            "PAYROLL_BACKEND_TIMEOUT_SECONDS": "2.5",
            "PAYROLL_BACKEND_BASE_URL": "https://payroll.example.com",
            "UNRELATED": "x",
        })

        assert settings.max_workers == 8
        assert settings.db_echo is True
        assert settings.backend_timeout_seconds == 2.5
        assert settings.backend_base_url == "https://payroll.example.com"

    def test_unset_variables_keep_defaults(self):
        assert PayrollSettings.from_env({}).max_workers == 4

    def test_unparseable_value(self):
        with pytest.raises(InvalidConfigurationValueError, match="cannot parse"):
            PayrollSettings.from_env({"PAYROLL_MAX_WORKERS": "many"})

    def test_unparseable_bool(self):
        with pytest.raises(InvalidConfigurationValueError):
            PayrollSettings.from_env({"PAYROLL_DB_ECHO": "perhaps"})


class TestValidation:

    @pytest.mark.parametrize(
        "overrides",
        [
            {"database_url": ""},
            {"backend_base_url": "ftp://backend"},
            {"backend_timeout_seconds": 0},
            {"backend_page_size": 0},
            {"max_workers": 0},
            {"log_level": "LOUD"},
        ],
    )
    def test_invalid_values(self, overrides):
        with pytest.raises(InvalidConfigurationValueError):
            PayrollSettings(**overrides)
