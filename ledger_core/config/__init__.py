"""Configuration package."""

from ledger_core.config.settings import (
    AISettings,
    DatabaseSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    LedgerSettings,
    OllamaSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AISettings",
    "DatabaseSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "LedgerSettings",
    "OllamaSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
