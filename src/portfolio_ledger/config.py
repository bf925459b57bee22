"""Centralized configuration management using pydantic-settings.

Configuration is loaded from environment variables with sensible defaults.
All settings can be overridden via environment variables or a .env file.
"""

from decimal import Decimal
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CASH_LIKE_SYMBOLS = ("USD", "USDT", "USDC")
DEFAULT_RUNNING_TIMEOUT_MINUTES = 30


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Log level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings have sensible defaults for development. Override via
    environment variables (prefixed with PFL_) or .env file.

    Examples:
        PFL_SQLITE_PATH=/var/lib/pfl/ledger.db
        PFL_LOG_LEVEL=DEBUG
        PFL_TRANSFER_MATCH_REL_TOLERANCE=0.005
        PFL_CASH_LIKE_SYMBOLS='["USD", "USDC", "EUR"]'
    """

    model_config = SettingsConfigDict(
        env_prefix="PFL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Portfolio Ledger"
    app_version: str = "0.1.0"
    environment: Environment = Environment.DEVELOPMENT

    # Database
    sqlite_path: Path = Field(
        default=Path("portfolio_ledger.db"),
        description="SQLite database file path",
    )

    # Logging
    log_level: LogLevel = LogLevel.INFO
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log output format: 'json' for production, 'console' for development",
    )
    log_file: Path | None = Field(default=None, description="Optional log file path")

    # Transfer matching
    transfer_match_abs_tolerance: Decimal = Field(
        default=Decimal("0.000001"),
        ge=0,
        description="Absolute quantity gap under which two transfer legs still match",
    )
    transfer_match_rel_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        description="Relative quantity gap under which two transfer legs still match",
    )

    # Valuation checks on user-entered rows
    valuation_abs_tolerance: Decimal = Field(default=Decimal("0.000001"), ge=0)
    valuation_rel_tolerance: Decimal = Field(default=Decimal("0.0025"), ge=0)

    # Assets treated as unit-priced cash regardless of type/bucket
    cash_like_symbols: tuple[str, ...] = DEFAULT_CASH_LIKE_SYMBOLS

    # Exchange sync queue
    sync_job_running_timeout_minutes: int = DEFAULT_RUNNING_TIMEOUT_MINUTES
    sync_job_claim_attempts: int = Field(default=5, ge=1)
    sync_job_max_attempts: int = Field(default=3, ge=1)
    sync_job_retry_backoff_seconds: int = Field(default=60, ge=0)

    @field_validator("cash_like_symbols", mode="after")
    @classmethod
    def normalize_cash_like_symbols(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Upper-case and de-blank the configured symbols."""
        return tuple(s.strip().upper() for s in v if s and s.strip())

    @field_validator("sync_job_running_timeout_minutes", mode="before")
    @classmethod
    def fallback_running_timeout(cls, v: object) -> int:
        """Fall back to the default timeout for unusable values."""
        try:
            minutes = int(float(str(v)))
        except (TypeError, ValueError, OverflowError):
            return DEFAULT_RUNNING_TIMEOUT_MINUTES
        if minutes <= 0:
            return DEFAULT_RUNNING_TIMEOUT_MINUTES
        return minutes

    @field_validator("log_format", mode="before")
    @classmethod
    def set_log_format_from_environment(cls, v: str, info) -> str:
        """Default to JSON logging in production."""
        if v is None:
            env = info.data.get("environment")
            if env == Environment.PRODUCTION:
                return "json"
        return v or "console"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == Environment.TESTING


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload settings.

    Returns:
        Configured Settings instance.
    """
    return Settings()
