"""Configuration package."""

from moneyquest.config.settings import (
    EngineSettings,
    GoogleSheetsSettings,
    MindeeSettings,
    PlaidSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "EngineSettings",
    "GoogleSheetsSettings",
    "MindeeSettings",
    "PlaidSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
