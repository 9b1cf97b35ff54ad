"""Configuration package."""

from zenio.config.settings import (
    AppSettings,
    AssistantSettings,
    GoogleSheetsSettings,
    PollingSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "AssistantSettings",
    "GoogleSheetsSettings",
    "PollingSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
