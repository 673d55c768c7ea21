"""
Configuration Management for the Church Books reconciliation core

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Table names, the storage backend and the reconciliation defaults
(loan category, payment category, fallback payment method) are all
overridable without code changes.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RecordStoreSettings(BaseSettings):
    """Which backend holds the books, and the table names inside it."""

    model_config = SettingsConfigDict(
        env_prefix="RECORD_STORE_",
        extra="ignore"
    )

    backend: str = Field(
        default="memory",
        pattern="^(memory|google_sheets)$",
        description="Record store backend"
    )

    liabilities_table: str = "liability_entries"
    income_table: str = "income_entries"
    income_categories_table: str = "income_categories"
    expenditure_table: str = "expenditure_entries"
    expenditure_categories_table: str = "expenditure_categories"
    accounts_table: str = "accounts"
    account_transactions_table: str = "account_transactions"
    audit_table: str = "audit_events"


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

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
        description="ID of the Google Sheets spreadsheet to use"
    )
    default_sheet_rows: int = Field(
        default=1000,
        ge=10,
        description="Row count for newly created worksheets"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class ReconciliationSettings(BaseSettings):
    """Defaults used when mirroring loans into income."""

    model_config = SettingsConfigDict(
        env_prefix="RECONCILIATION_",
        extra="ignore"
    )

    loan_category_name: str = Field(
        default="Loans",
        description="Name of the income category created for loan income"
    )
    loan_category_description: str = "Income from loans and borrowed funds"
    loan_category_keywords: str = Field(
        default="loan,debt,borrow",
        description="Comma-separated substrings that mark an existing loan category"
    )
    payment_category_name: str = Field(
        default="Liability Payment",
        description="Expenditure category for liability payments"
    )
    payment_category_description: str = "System category for liability payments"
    default_payment_method: str = "other"
    serialize_per_liability: bool = Field(
        default=True,
        description="Serialize reconciliations of the same liability in-process"
    )

    @property
    def loan_keywords_list(self) -> list[str]:
        """Get keywords as a lowercase list."""
        return [
            word.strip().lower()
            for word in self.loan_category_keywords.split(",")
            if word.strip()
        ]


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )


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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def record_store(self) -> RecordStoreSettings:
        return RecordStoreSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def reconciliation(self) -> ReconciliationSettings:
        return ReconciliationSettings()

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


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("record_store", "google_sheets", "reconciliation", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
