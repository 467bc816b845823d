"""
Configuration Management for the MoneyQuest Data Engine

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The engine itself needs almost nothing from the environment; the
collaborator adapters (Google Sheets backups, Mindee OCR, Plaid) each get
their own settings class and env prefix so that a missing key for one
adapter never blocks the others.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineSettings(BaseSettings):
    """Core data engine settings."""

    model_config = SettingsConfigDict(
        env_prefix="MONEYQUEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Split invariant tolerance, in currency units
    split_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        description="Maximum allowed difference between split sum and parent amount"
    )
    backup_version: str = Field(
        default="1.0",
        description="Version tag written into every backup snapshot"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets backup storage configuration."""

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
        description="ID of the spreadsheet that holds backup snapshots"
    )
    backups_sheet_name: str = Field(
        default="Backups",
        description="Name of the worksheet for backup snapshots"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running a backup."
            )
        return v


class MindeeSettings(BaseSettings):
    """Mindee receipt OCR configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MINDEE_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Mindee API key"
    )
    min_confidence: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Below this confidence the receipt is flagged for review"
    )
    max_upload_size_mb: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Maximum receipt file size in MB"
    )

    @property
    def max_upload_size_bytes(self) -> int:
        """Get max upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


class PlaidSettings(BaseSettings):
    """Plaid bank aggregation configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PLAID_",
        extra="ignore"
    )

    client_id: str = Field(
        ...,
        description="Plaid client ID"
    )
    secret: str = Field(
        ...,
        description="Plaid secret for the selected environment"
    )
    env: str = Field(
        default="sandbox",
        pattern="^(sandbox|development|production)$",
        description="Plaid environment"
    )

    @property
    def host(self) -> str:
        return f"https://{self.env}.plaid.com"


class Settings(BaseSettings):
    """
    Root settings container.

    Sub-settings are loaded lazily so that the engine can run with only
    the adapters that are actually configured.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def mindee(self) -> MindeeSettings:
        return MindeeSettings()

    @property
    def plaid(self) -> PlaidSettings:
        return PlaidSettings()


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

    Returns a dict of {setting_name: is_valid} plus an
    ``<name>_error`` entry for every section that failed.
    """
    results = {}
    settings = get_settings()

    for name in ("engine", "google_sheets", "mindee", "plaid"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
