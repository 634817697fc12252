"""Gemini analysis provider (google-generativeai)."""

import time
from typing import Optional, Sequence

import google.generativeai as genai
import structlog
from tenacity import retry, stop_after_attempt, wait_exponential

from ledger_core.config import GeminiSettings, get_settings
from ledger_core.errors import AnalysisError
from ledger_core.models.ledger import Account
from ledger_core.models.suggestion import AnalysisRequest, ProviderProposal
from ledger_core.services.providers.base import (
    SYSTEM_PROMPT,
    AnalysisProvider,
    build_analysis_prompt,
    parse_proposal,
)

logger = structlog.get_logger(__name__)


class GeminiAnalysisProvider(AnalysisProvider):
    """Proposes journal entries with a Gemini model."""

    name = "gemini"

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            system_instruction=SYSTEM_PROMPT,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            },
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _generate(self, prompt: str) -> str:
        response = await self._model.generate_content_async(prompt)
        return response.text

    async def analyze(
        self,
        request: AnalysisRequest,
        accounts: Sequence[Account],
    ) -> ProviderProposal:
        prompt = build_analysis_prompt(request, accounts)
        started = time.perf_counter()
        try:
            text = await self._generate(prompt)
        except Exception as e:
            logger.warning("gemini_call_failed", error=str(e))
            raise AnalysisError(self.name, f"Gemini call failed: {e}") from e

        return parse_proposal(
            text,
            provider=self.name,
            model_used=self._settings.model_name,
            processing_time_ms=int((time.perf_counter() - started) * 1000),
            request=request,
        )
