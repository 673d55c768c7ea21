"""Configuration package."""

from src.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    ReconciliationSettings,
    RecordStoreSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "ReconciliationSettings",
    "RecordStoreSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
