"""Configuration package."""

from mileage.config.settings import (
    AppSettings,
    CurrencySettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "CurrencySettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
