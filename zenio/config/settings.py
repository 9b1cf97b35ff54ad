"""
Configuration Management for Zenio

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Engine components receive their settings section through the constructor
and only fall back to get_settings() when none is given, so tests can
build components with explicit values and no environment.
"""

from datetime import date
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AssistantSettings(BaseSettings):
    """Reasoning service (assistants protocol) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="OPENAI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="API key for the reasoning service"
    )
    assistant_id: str = Field(
        ...,
        description="Identifier of the configured assistant (agent)"
    )
    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the assistants REST API"
    )
    beta_header: str = Field(
        default="assistants=v2",
        description="Value of the OpenAI-Beta header required by the protocol"
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        le=120,
        description="Per-request HTTP timeout in seconds"
    )


class PollingSettings(BaseSettings):
    """
    Run polling and dispatch loop bounds.

    The worst-case wall time of one turn is roughly
    max_attempts * max_delay * max_tool_iterations, so keep these small.
    """

    model_config = SettingsConfigDict(
        env_prefix="ZENIO_POLL_",
        extra="ignore"
    )

    initial_delay: float = Field(
        default=0.5,
        gt=0,
        description="First backoff delay in seconds"
    )
    growth_factor: float = Field(
        default=1.2,
        ge=1.0,
        le=3.0,
        description="Multiplier applied to the delay after each wait"
    )
    max_delay: float = Field(
        default=3.0,
        gt=0,
        description="Backoff cap in seconds"
    )
    max_attempts: int = Field(
        default=15,
        ge=1,
        le=60,
        description="Maximum number of status polls per wait"
    )
    rate_limit_delay: float = Field(
        default=20.0,
        ge=0,
        description="Wait in seconds after a run failed because of provider throttling"
    )
    max_rate_limit_retries: int = Field(
        default=2,
        ge=0,
        description="How many throttled failures are waited out before giving up"
    )
    max_tool_iterations: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum requires_action rounds per turn"
    )

    @field_validator('max_delay')
    @classmethod
    def validate_max_delay(cls, v: float, info) -> float:
        """The cap can never be below the seed delay."""
        initial = info.data.get("initial_delay")
        if initial is not None and v < initial:
            raise ValueError("max_delay must be >= initial_delay")
        return v


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

    # Sheet names within the spreadsheet
    categories_sheet_name: str = Field(default="Categories")
    transactions_sheet_name: str = Field(default="Transactions")
    budgets_sheet_name: str = Field(default="Budgets")
    goals_sheet_name: str = Field(default="Goals")
    users_sheet_name: str = Field(default="Users")
    onboarding_sheet_name: str = Field(default="Onboarding")
    usage_sheet_name: str = Field(default="Usage")
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
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

    # Dates
    reference_utc_offset_hours: int = Field(
        default=-4,
        ge=-12,
        le=14,
        description="Fixed offset used to compute 'today' for relative dates and budget periods"
    )
    default_timezone: str = Field(
        default="UTC",
        description="Timezone assumed when the caller does not send one"
    )
    minimum_transaction_date: date = Field(
        default=date(2020, 1, 1),
        description="Transactions dated before this are rejected"
    )

    # Conversation
    default_display_name: str = Field(
        default="Usuario",
        description="Name used to greet users without a profile name"
    )

    # Usage
    free_plan_monthly_queries: int = Field(
        default=10,
        ge=-1,
        description="Assistant turns per month on the free plan (-1 = unlimited)"
    )

    # Listing
    default_list_limit: int = Field(
        default=20,
        ge=1,
        le=100,
        description="Records returned by list operations when no limit is given"
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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def assistant(self) -> AssistantSettings:
        return AssistantSettings()

    @property
    def polling(self) -> PollingSettings:
        return PollingSettings()

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


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    "<name>_error" entries for the sections that failed.
    """
    results = {}
    settings = get_settings()

    for name in ("assistant", "polling", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
