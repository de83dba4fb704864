"""Application settings and configuration management using Pydantic."""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings

ENVIRONMENTS = ("development", "testing", "production")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("structured", "plain")


def _one_of(value: str, choices: Sequence[str], label: str) -> str:
    if value not in choices:
        raise ValueError(f"{label} must be one of: {', '.join(choices)}")
    return value


def _within(value, low, high, label: str):
    if not low <= value <= high:
        raise ValueError(f"{label} must be between {low} and {high}")
    return value


class Settings(BaseSettings):
    """Tradedesk configuration, read from the environment and ``.env``."""

    # Environment and deployment
    app_version: str = "0.1.0"
    environment: str = "development"
    debug: bool = False

    # API settings
    endpoint_host: str = "0.0.0.0"
    endpoint_port: int = 8000
    api_reload: bool = False
    api_log_level: str = "INFO"

    # Database settings
    database_url: Optional[str] = None
    data_directory: str = "data"
    database_echo_sql: bool = False
    database_pool_pre_ping: bool = True
    database_pool_recycle: int = 3600

    # Wallet settings; wallets created on first use start at this balance
    default_wallet_balance: Decimal = Decimal("0")
    default_currency: str = "USD"

    # Quote provider settings
    quote_timeout_seconds: float = 5.0
    quote_max_attempts: int = 3
    quote_backoff_seconds: float = 0.25

    # Portfolio settings; "today" for today's P&L
    portfolio_timezone: str = "UTC"

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "structured"
    log_file_enabled: bool = True
    log_file_path: str = "data/tradedesk.log"
    audit_log_path: Optional[str] = None
    log_max_file_size: str = "10MB"
    log_backup_count: int = 5

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",  # Ignore extra environment variables
    }

    @field_validator("environment", "log_format")
    @classmethod
    def validate_lowercase_choice(cls, v, info):
        """Validate environment and log format names."""
        choices = ENVIRONMENTS if info.field_name == "environment" else LOG_FORMATS
        return _one_of(v.lower(), choices, info.field_name)

    @field_validator("log_level", "api_log_level")
    @classmethod
    def validate_log_level(cls, v, info):
        return _one_of(v.upper(), LOG_LEVELS, info.field_name)

    @field_validator("endpoint_port")
    @classmethod
    def validate_port(cls, v):
        return _within(v, 1, 65535, "Port")

    @field_validator("default_wallet_balance")
    @classmethod
    def validate_wallet_balance(cls, v):
        """Starting balances can never be negative."""
        if v < 0:
            raise ValueError("Default wallet balance cannot be negative")
        return v

    @field_validator("default_currency")
    @classmethod
    def validate_currency(cls, v):
        """Validate ISO-style currency code."""
        if len(v) != 3 or not v.isalpha():
            raise ValueError("Currency must be a three letter code")
        return v.upper()

    @field_validator("quote_timeout_seconds")
    @classmethod
    def validate_quote_timeout(cls, v):
        if v <= 0:
            raise ValueError("Quote timeout must be positive")
        return _within(v, 0, 60, "Quote timeout")

    @field_validator("quote_max_attempts")
    @classmethod
    def validate_quote_attempts(cls, v):
        return _within(v, 1, 10, "Quote attempts")

    @field_validator("quote_backoff_seconds")
    @classmethod
    def validate_quote_backoff(cls, v):
        if v < 0:
            raise ValueError("Quote backoff cannot be negative")
        return v

    @field_validator("portfolio_timezone")
    @classmethod
    def validate_timezone(cls, v):
        """Validate the timezone name resolves."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    def get_database_url(self) -> str:
        """Configured URL, or a SQLite file in the data directory."""
        if self.database_url:
            return self.database_url

        db_dir = Path(self.data_directory)
        db_dir.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_dir / 'tradedesk.db'}"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application configuration instance
    """
    return Settings()
