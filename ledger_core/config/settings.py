"""
Configuration Management for Ledger Core

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """Posting and balancing rules."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        extra="ignore"
    )

    balance_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        gt=0,
        description="Absolute tolerance for debits == credits comparisons"
    )
    transaction_number_width: int = Field(
        default=6,
        ge=1,
        le=12,
        description="Zero-padded width used when displaying transaction numbers"
    )
    max_posting_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts when a transaction number collides under concurrency"
    )


class DatabaseSettings(BaseSettings):
    """SQL ledger store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        extra="ignore"
    )

    url: str = Field(
        default="sqlite:///ledger.db",
        description="SQLAlchemy database URL"
    )
    echo: bool = Field(
        default=False,
        description="Log every SQL statement"
    )


class AISettings(BaseSettings):
    """Selection of the analysis provider."""

    model_config = SettingsConfigDict(
        env_prefix="AI_",
        extra="ignore"
    )

    provider: str = Field(
        default="mock",
        description="Analysis provider: mock, gemini or ollama"
    )
    default_confidence_threshold: float = Field(
        default=0.70,
        ge=0.0,
        le=1.0,
        description="Threshold given to newly created accounting agents"
    )

    @field_validator('provider')
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Only known providers can be selected."""
        value = v.strip().lower()
        if value not in {"mock", "gemini", "ollama"}:
            raise ValueError(f"Unknown AI provider: {v}")
        return value


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=2048,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class OllamaSettings(BaseSettings):
    """Local Ollama server configuration."""

    model_config = SettingsConfigDict(
        env_prefix="OLLAMA_",
        extra="ignore"
    )

    endpoint: str = Field(
        default="http://localhost:11434",
        description="Base URL of the Ollama server"
    )
    model_name: str = Field(
        default="llama3",
        description="Local model to use"
    )
    timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Request timeout (local models can be slow)"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets audit export configuration."""

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
        description="ID of the spreadsheet receiving the audit trail"
    )
    audit_sheet_name: str = Field(
        default="LedgerAudit",
        description="Name of the sheet for audit events"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before enabling the audit export."
            )
        return v


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

    # Sub-settings are loaded lazily so a missing Gemini key does not
    # prevent the ledger from starting with the mock provider.

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def database(self) -> DatabaseSettings:
        return DatabaseSettings()

    @property
    def ai(self) -> AISettings:
        return AISettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def ollama(self) -> OllamaSettings:
        return OllamaSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, object]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid} plus an
    "<name>_error" entry for each failure. Useful for startup checks.
    """
    results: dict[str, object] = {}
    settings = get_settings()

    for name in ("ledger", "database", "ai", "gemini", "ollama", "google_sheets"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
