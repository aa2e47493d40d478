"""
Configuration Management for the Mileage Engine

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every tunable that changes an analysis outcome (lookback window,
viability horizon, fallback exchange rates) lives in one place and is
validated at startup.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CurrencySettings(BaseSettings):
    """Exchange-rate snapshot used when no live rates are injected."""

    model_config = SettingsConfigDict(
        env_prefix="CURRENCY_",
        extra="ignore"
    )

    base_currency: str = Field(
        default="BRL",
        min_length=3,
        max_length=3,
        description="Currency every rate in the snapshot is quoted against"
    )
    # Units of each currency per one unit of the base currency
    fallback_rates: dict[str, Decimal] = Field(
        default_factory=lambda: {
            "BRL": Decimal("1"),
            "USD": Decimal("0.19"),
            "EUR": Decimal("0.17"),
        },
        description="Fallback rate snapshot (units per base unit)"
    )

    @field_validator('base_currency')
    @classmethod
    def normalize_base_currency(cls, v: str) -> str:
        return v.upper()

    @field_validator('fallback_rates')
    @classmethod
    def validate_rates(cls, v: dict[str, Decimal]) -> dict[str, Decimal]:
        """Rates must be strictly positive."""
        normalized = {}
        for code, rate in v.items():
            if rate <= 0:
                raise ValueError(f"Exchange rate for {code} must be positive")
            normalized[code.upper()] = rate
        return normalized


class StorageSettings(BaseSettings):
    """Retry policy for calls into the record store."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        extra="ignore"
    )

    retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="How many times a transient storage failure is retried"
    )
    retry_wait_min_seconds: float = Field(
        default=0.5,
        ge=0.0,
        description="Minimum backoff between retries"
    )
    retry_wait_max_seconds: float = Field(
        default=5.0,
        ge=0.0,
        description="Maximum backoff between retries"
    )


class AppSettings(BaseSettings):
    """
    Main engine settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
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

    # Accrual
    home_currency: str = Field(
        default="BRL",
        min_length=3,
        max_length=3,
        description="Currency spend amounts are recorded in"
    )
    supported_currencies: str = Field(
        default="BRL,USD,EUR",
        description="Comma-separated list of currencies a rule may earn in"
    )
    max_reasonable_miles_per_unit: Decimal = Field(
        default=Decimal("20"),
        gt=0,
        description="Earning rates above this are flagged for review"
    )

    # Analysis
    velocity_lookback_months: int = Field(
        default=3,
        ge=1,
        le=36,
        description="Months of history used to compute accrual velocity"
    )
    default_horizon_months: int = Field(
        default=12,
        ge=1,
        le=120,
        description="Projection horizon for goals without a target date"
    )

    @field_validator('home_currency')
    @classmethod
    def normalize_home_currency(cls, v: str) -> str:
        return v.upper()

    @property
    def supported_currencies_list(self) -> list[str]:
        """Get supported currencies as a list."""
        return [code.strip().upper() for code in self.supported_currencies.split(",") if code.strip()]


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

    @property
    def app(self) -> AppSettings:
        return AppSettings()

    @property
    def currency(self) -> CurrencySettings:
        return CurrencySettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get engine settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
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

    for name in ("app", "currency", "storage"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
