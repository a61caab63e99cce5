"""Configuration package."""

from moneytrackr.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    Settings,
    get_settings,
    is_backend_configured,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "Settings",
    "get_settings",
    "is_backend_configured",
    "validate_all_settings",
]
