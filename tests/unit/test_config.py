"""
Unit tests for configuration loading
"""
import pydantic
import pytest

from wb_finance_report.utils import config as config_module
from wb_finance_report.utils.config import (
    ReportSettings, reload_config, validate_configuration,
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ("WILDBERRIES_API_KEY", "GOOGLE_SHEET_ID", "REPORT_MAX_DAYS",
                 "REPORT_PREV_BUFFER_POLICY", "REPORT_CREDIT_FALLBACK_ENABLED"):
        monkeypatch.delenv(name, raising=False)
    yield monkeypatch
    config_module._config = None


class TestReportSettings:

    def test_defaults(self):
        settings = ReportSettings()

        assert settings.max_report_days == 30
        assert settings.prev_buffer_policy == "match_main"
        assert settings.credit_fallback_body == 15744.74
        assert settings.credit_fallback_interest == 3461.26
        assert settings.sku_batch_size == 50

    def test_policy_normalized(self):
        assert ReportSettings(prev_buffer_policy="REQUIRE_REPEATED").prev_buffer_policy == "require_repeated"

    @pytest.mark.parametrize("kwargs", [
        {"prev_buffer_policy": "always"},
        {"sku_batch_size": 0},
        {"sku_batch_delay": -1},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(pydantic.ValidationError):
            ReportSettings(**kwargs)


class TestFinanceReportConfig:

    def test_environment(self, clean_env):
        clean_env.setenv("WILDBERRIES_API_KEY", "token")
        clean_env.setenv("REPORT_MAX_DAYS", "14")
        clean_env.setenv("REPORT_PREV_BUFFER_POLICY", "require_repeated")
        clean_env.setenv("REPORT_CREDIT_FALLBACK_ENABLED", "false")

        config = reload_config()

        assert config.wildberries.api_key == "token"
        assert config.report.max_report_days == 14
        assert config.report.prev_buffer_policy == "require_repeated"
        assert config.report.credit_fallback_enabled is False
        assert config.google_sheets.enabled is False

    def test_validate_configuration(self, clean_env):
        reload_config()
        result = validate_configuration()

        assert result["valid"] is True
        assert result["summary"]["wildberries_api"]["has_api_key"] is False

    def test_invalid_report_settings(self, clean_env):
        clean_env.setenv("REPORT_PREV_BUFFER_POLICY", "sometimes")
        config = reload_config()

        with pytest.raises(pydantic.ValidationError):
            config.report
