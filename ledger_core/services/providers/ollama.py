"""
Ollama analysis provider.

Talks to a local Ollama server over its /api/chat endpoint. Local models
are slow, so the timeout is generous and only connection-level failures
are retried.
"""

import time
from typing import Optional, Sequence

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ledger_core.config import OllamaSettings, get_settings
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


class OllamaAnalysisProvider(AnalysisProvider):
    """
    Proposes journal entries with a local Ollama model.

    Args:
        settings: Server configuration
        transport: Optional httpx transport (tests pass httpx.MockTransport)
    """

    name = "ollama"

    def __init__(
        self,
        settings: Optional[OllamaSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._settings = settings or get_settings().ollama
        self._transport = transport

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _chat(self, prompt: str) -> str:
        payload = {
            "model": self._settings.model_name,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "stream": False,
            "options": {"temperature": self._settings.temperature},
        }
        async with httpx.AsyncClient(
            base_url=self._settings.endpoint,
            timeout=self._settings.timeout_seconds,
            transport=self._transport,
        ) as client:
            response = await client.post("/api/chat", json=payload)
            response.raise_for_status()
            return response.json()["message"]["content"]

    async def analyze(
        self,
        request: AnalysisRequest,
        accounts: Sequence[Account],
    ) -> ProviderProposal:
        prompt = build_analysis_prompt(request, accounts)
        started = time.perf_counter()
        try:
            text = await self._chat(prompt)
        except httpx.HTTPError as e:
            logger.warning("ollama_call_failed", endpoint=self._settings.endpoint, error=str(e))
            raise AnalysisError(self.name, f"Ollama call failed: {e}") from e
        except (KeyError, ValueError) as e:
            raise AnalysisError(self.name, f"Unexpected Ollama response: {e}") from e

        return parse_proposal(
            text,
            provider=self.name,
            model_used=self._settings.model_name,
            processing_time_ms=int((time.perf_counter() - started) * 1000),
            request=request,
        )
