"""
AI Analysis Providers

Strategy pattern: the analysis flow holds one AnalysisProvider, chosen by
the AI_PROVIDER setting.
"""

from typing import Optional

from ledger_core.config import Settings, get_settings
from ledger_core.services.providers.base import (
    AnalysisProvider,
    build_analysis_prompt,
    parse_proposal,
)
from ledger_core.services.providers.mock import MockAnalysisProvider


def create_provider(settings: Optional[Settings] = None) -> AnalysisProvider:
    """Build the configured provider. Imports are lazy so unused SDKs stay unloaded."""
    settings = settings or get_settings()
    provider = settings.ai.provider

    if provider == "gemini":
        from ledger_core.services.providers.gemini import GeminiAnalysisProvider
        return GeminiAnalysisProvider(settings.gemini)
    if provider == "ollama":
        from ledger_core.services.providers.ollama import OllamaAnalysisProvider
        return OllamaAnalysisProvider(settings.ollama)
    return MockAnalysisProvider()


__all__ = [
    "AnalysisProvider",
    "MockAnalysisProvider",
    "build_analysis_prompt",
    "create_provider",
    "parse_proposal",
]
