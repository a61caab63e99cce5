"""
Configuration Management for MoneyTrackr

Uses pydantic-settings for type-safe configuration from environment variables.

All configuration is centralized here. The remote backend is optional:
when it is not configured the application runs entirely against the
local key-value store, which is an expected operating mode rather than
an error.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets remote backend configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet used as the remote store"
    )

    # Rows pre-allocated when a table worksheet is created
    initial_rows: int = Field(
        default=1000,
        ge=10,
        description="Rows allocated for a newly created table worksheet"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before connecting to the remote store."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="MONEYTRACKR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Local fallback store
    local_store_path: str = Field(
        default="~/.moneytrackr/local_store.json",
        description="JSON file backing the local key-value store"
    )
    export_directory: str = Field(
        default="~/.moneytrackr/exports",
        description="Directory that receives data exports and reports"
    )

    # Currency
    default_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Currency used when the profile has none"
    )

    # History / cloud storage
    storage_quota_mb: int = Field(
        default=100,
        ge=1,
        description="Snapshot storage quota per user in MB"
    )
    history_cache_limit: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Number of recent snapshots kept in memory"
    )
    history_query_limit: int = Field(
        default=1000,
        ge=1,
        description="Maximum snapshots returned by a history query"
    )
    security_log_limit: int = Field(
        default=100,
        ge=1,
        description="Number of security log entries retained"
    )

    # Background timers (seconds)
    auto_sync_interval_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Interval between automatic full syncs"
    )
    backup_check_interval_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Interval between daily auto-backup checks"
    )
    rate_refresh_interval_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Interval between exchange-rate refreshes"
    )

    @field_validator('default_currency')
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @property
    def storage_quota_bytes(self) -> int:
        """Get storage quota in bytes."""
        return self.storage_quota_mb * 1024 * 1024

    @property
    def local_store_file(self) -> Path:
        return Path(self.local_store_path).expanduser()

    @property
    def export_path(self) -> Path:
        return Path(self.export_directory).expanduser()


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def is_backend_configured(settings: Optional[Settings] = None) -> bool:
    """Return True when the remote backend has the configuration it needs."""
    settings = settings or get_settings()
    try:
        _ = settings.google_sheets
    except ValidationError:
        return False
    return True


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.google_sheets
        results["google_sheets"] = True
    except ValidationError as e:
        results["google_sheets"] = False
        results["google_sheets_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except ValidationError as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
