"""
Paystream - Configuration Settings

This module handles all application configuration using Pydantic Settings.
Environment variables are loaded from .env file.

Statutory rates and the PAYE bracket table live here so jurisdictional
updates are configuration changes, not code changes.
"""

from decimal import Decimal
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TaxBracketSetting(BaseModel):
    """One row of the annual PAYE bracket table."""
    upper_bound: Optional[Decimal] = None  # None = unbounded top bracket
    base_amount: Decimal
    marginal_rate: Decimal


# South African 2024 annual PAYE brackets
DEFAULT_PAYE_BRACKETS = [
    TaxBracketSetting(upper_bound=Decimal("237100"), base_amount=Decimal("0"), marginal_rate=Decimal("0.18")),
    TaxBracketSetting(upper_bound=Decimal("370500"), base_amount=Decimal("42678"), marginal_rate=Decimal("0.26")),
    TaxBracketSetting(upper_bound=Decimal("512800"), base_amount=Decimal("77362"), marginal_rate=Decimal("0.31")),
    TaxBracketSetting(upper_bound=Decimal("673000"), base_amount=Decimal("121475"), marginal_rate=Decimal("0.36")),
    TaxBracketSetting(upper_bound=Decimal("857900"), base_amount=Decimal("179147"), marginal_rate=Decimal("0.39")),
    TaxBracketSetting(upper_bound=Decimal("1817000"), base_amount=Decimal("251258"), marginal_rate=Decimal("0.41")),
    TaxBracketSetting(upper_bound=None, base_amount=Decimal("644489"), marginal_rate=Decimal("0.45")),
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ===========================================
    # APPLICATION CONFIGURATION
    # ===========================================
    app_name: str = "Paystream Payroll Engine"
    app_env: str = "development"
    debug: bool = False

    # ===========================================
    # DATABASE CONFIGURATION
    # ===========================================
    database_url_async: str = "sqlite+aiosqlite:///./paystream.db"
    database_pool_size: int = 5
    database_max_overflow: int = 10

    # ===========================================
    # PAYE (EMPLOYEES' TAX)
    # Accepts a JSON list from the environment, e.g.
    # PAYE_BRACKETS='[{"upper_bound": "100000", "base_amount": "0", "marginal_rate": "0.1"}, ...]'
    # ===========================================
    paye_brackets: List[TaxBracketSetting] = Field(
        default_factory=lambda: list(DEFAULT_PAYE_BRACKETS)
    )
    periods_per_year: int = 12

    # ===========================================
    # UIF / SDL CONTRIBUTIONS
    # ===========================================
    uif_employee_rate: Decimal = Decimal("0.01")
    uif_employer_rate: Decimal = Decimal("0.01")
    uif_monthly_ceiling: Optional[Decimal] = None  # e.g. 17712.00 caps each share at 177.12
    sdl_rate: Decimal = Decimal("0.01")

    # ===========================================
    # STATUTORY CALENDAR
    # ===========================================
    withholding_due_day: int = 7  # EMP201 due on this day of the following month
    tax_year_start_month: int = 3  # tax year N runs March N-1 .. February N
    min_period_year: int = 2000

    # ===========================================
    # CONCURRENCY
    # ===========================================
    write_conflict_retries: int = 3

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env.lower() == "development"

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured store is SQLite (no pool sizing, no row locks)."""
        return self.database_url_async.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()


# Export settings instance
settings = get_settings()
