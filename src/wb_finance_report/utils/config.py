"""
Configuration management for WB Finance Report.

Pydantic models describe each configuration area; ``FinanceReportConfig``
reads them from the environment and an optional ``.env`` file. Core
aggregation functions accept ``ReportSettings`` explicitly and fall back to
its defaults, so they never depend on the environment.
"""

from datetime import datetime
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from wb_finance_report.utils.logger import get_logger


logger = get_logger(__name__)


class WildberriesAPIConfig(BaseModel):
    """Wildberries API endpoints and transport settings."""

    api_key: str = Field(default="", description="Wildberries API token")
    statistics_base_url: str = Field(
        default="https://statistics-api.wildberries.ru",
        description="Statistics API (realization report)"
    )
    analytics_base_url: str = Field(
        default="https://seller-analytics-api.wildberries.ru",
        description="Seller analytics API (paid storage, acceptance)"
    )
    advert_base_url: str = Field(
        default="https://advert-api.wildberries.ru",
        description="Advertising API (campaigns, ledger)"
    )
    content_base_url: str = Field(
        default="https://content-api.wildberries.ru",
        description="Content API (product cards)"
    )
    timeout: int = Field(default=60, description="API request timeout in seconds")
    retry_count: int = Field(default=3, description="Number of retry attempts")
    retry_delay: float = Field(default=1.0, description="Base delay between retries in seconds")

    @field_validator('timeout', 'retry_count')
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("Value must be positive")
        return v


class ReportSettings(BaseModel):
    """Tunables of the reconciliation and aggregation pipeline."""

    max_report_days: int = Field(default=30, description="Max realization report span")
    storage_max_days: int = Field(default=8, description="Max paid storage report span")
    acceptance_max_days: int = Field(default=31, description="Max acceptance report span")

    prev_buffer_policy: str = Field(
        default="match_main",
        description="Previous buffer day admission rule: match_main | require_repeated"
    )

    sku_batch_size: int = Field(default=50, description="Campaign ids per detail request")
    sku_batch_delay: float = Field(default=0.2, description="Pause between SKU batches, seconds")
    sku_rate_limit_retries: int = Field(default=3, description="Retries of a batch on HTTP 429")
    sku_rate_limit_base_delay: float = Field(default=1.0, description="First 429 backoff, seconds")
    sku_rate_limit_max_delay: float = Field(default=8.0, description="429 backoff ceiling, seconds")
    sku_transient_retries: int = Field(default=2, description="Retries of a batch on other failures")
    sku_transient_delay: float = Field(default=1.0, description="Linear backoff step, seconds")

    credit_fallback_enabled: bool = Field(
        default=True,
        description="Substitute fixed credit values when no credit rows are present"
    )
    credit_fallback_body: float = Field(default=15744.74, description="Fallback credit body")
    credit_fallback_interest: float = Field(default=3461.26, description="Fallback credit interest")

    task_poll_interval: float = Field(default=5.0, description="Report task status poll interval")
    task_poll_attempts: int = Field(default=24, description="Report task status poll attempts")

    @field_validator('max_report_days', 'storage_max_days', 'acceptance_max_days',
                     'sku_batch_size', 'task_poll_attempts')
    @classmethod
    def validate_positive_int(cls, v):
        if v <= 0:
            raise ValueError("Value must be positive")
        return v

    @field_validator('sku_batch_delay', 'sku_rate_limit_base_delay', 'sku_rate_limit_max_delay',
                     'sku_transient_delay', 'task_poll_interval')
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("Delay cannot be negative")
        return v

    @field_validator('prev_buffer_policy')
    @classmethod
    def validate_policy(cls, v):
        valid = ("match_main", "require_repeated")
        if v.lower() not in valid:
            raise ValueError(f"Previous buffer policy must be one of: {valid}")
        return v.lower()


class GoogleSheetsConfig(BaseModel):
    """Google Sheets output configuration."""

    service_account_key_path: Optional[str] = Field(
        default=None, description="Path to service account JSON file"
    )
    sheet_id: Optional[str] = Field(default=None, description="Target spreadsheet ID")

    @property
    def enabled(self) -> bool:
        return bool(self.service_account_key_path and self.sheet_id)


class ApplicationConfig(BaseModel):
    """General application configuration."""

    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: str = Field(default="./logs", description="Log files directory")
    debug_mode: bool = Field(default=False, description="Debug mode flag")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()


class FinanceReportConfig(BaseSettings):
    """Main application configuration loaded from environment and .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    wildberries_api_key: str = ""
    wildberries_api_timeout: int = 60
    wildberries_retry_count: int = 3
    wildberries_retry_delay: float = 1.0

    google_service_account_key_path: Optional[str] = None
    google_sheet_id: Optional[str] = None

    log_level: str = "INFO"
    log_dir: str = "./logs"
    debug_mode: bool = False

    report_max_days: int = 30
    report_prev_buffer_policy: str = "match_main"
    report_sku_batch_size: int = 50
    report_sku_batch_delay: float = 0.2
    report_credit_fallback_enabled: bool = True
    report_credit_fallback_body: float = 15744.74
    report_credit_fallback_interest: float = 3461.26

    @property
    def wildberries(self) -> WildberriesAPIConfig:
        """Get Wildberries API configuration."""
        return WildberriesAPIConfig(
            api_key=self.wildberries_api_key,
            timeout=self.wildberries_api_timeout,
            retry_count=self.wildberries_retry_count,
            retry_delay=self.wildberries_retry_delay,
        )

    @property
    def report(self) -> ReportSettings:
        """Get reconciliation/aggregation settings."""
        return ReportSettings(
            max_report_days=self.report_max_days,
            prev_buffer_policy=self.report_prev_buffer_policy,
            sku_batch_size=self.report_sku_batch_size,
            sku_batch_delay=self.report_sku_batch_delay,
            credit_fallback_enabled=self.report_credit_fallback_enabled,
            credit_fallback_body=self.report_credit_fallback_body,
            credit_fallback_interest=self.report_credit_fallback_interest,
        )

    @property
    def google_sheets(self) -> GoogleSheetsConfig:
        """Get Google Sheets configuration."""
        return GoogleSheetsConfig(
            service_account_key_path=self.google_service_account_key_path,
            sheet_id=self.google_sheet_id,
        )

    @property
    def app(self) -> ApplicationConfig:
        """Get application configuration."""
        return ApplicationConfig(
            log_level=self.log_level,
            log_dir=self.log_dir,
            debug_mode=self.debug_mode,
        )


_config: Optional[FinanceReportConfig] = None


def get_config() -> FinanceReportConfig:
    """
    Get the global configuration instance.

    Returns:
        FinanceReportConfig: Validated configuration instance.

    Raises:
        ValueError: If configuration validation fails.
    """
    global _config

    if _config is None:
        try:
            _config = FinanceReportConfig()
        except Exception as e:
            raise ValueError(f"Configuration validation failed: {e}")

    return _config


def reload_config() -> FinanceReportConfig:
    """Drop the cached configuration and read the environment again."""
    global _config
    _config = None
    return get_config()


def validate_configuration() -> Dict[str, Any]:
    """
    Validate current configuration and return a sanitized summary.

    Returns:
        Dict with ``valid`` flag and either ``summary`` or ``error``.
    """
    try:
        config = get_config()
        report = config.report
        return {
            "valid": True,
            "timestamp": datetime.now().isoformat(),
            "summary": {
                "wildberries_api": {
                    "statistics_base_url": config.wildberries.statistics_base_url,
                    "advert_base_url": config.wildberries.advert_base_url,
                    "timeout": config.wildberries.timeout,
                    "has_api_key": bool(config.wildberries.api_key),
                },
                "report": report.model_dump(),
                "google_sheets": {
                    "enabled": config.google_sheets.enabled,
                    "sheet_id": config.google_sheets.sheet_id,
                },
                "application": config.app.model_dump(),
            },
        }
    except Exception as e:
        logger.error(f"Configuration validation failed: {e}")
        return {
            "valid": False,
            "error": str(e),
            "timestamp": datetime.now().isoformat(),
        }
