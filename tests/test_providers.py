"""
Tests for the AI analysis providers.

No real API calls: Ollama runs against httpx.MockTransport and Gemini
against a fake model object.
"""

import asyncio
import json
from datetime import date
from decimal import Decimal

import httpx
import pytest

from ledger_core.config import GeminiSettings, OllamaSettings, Settings
from ledger_core.errors import AnalysisError
from ledger_core.models import AnalysisRequest
from ledger_core.services.providers import (
    MockAnalysisProvider,
    build_analysis_prompt,
    create_provider,
    parse_proposal,
)
from ledger_core.services.providers.ollama import OllamaAnalysisProvider


GOOD_ANSWER = json.dumps({
    "title": "Office rent",
    "description": "Monthly rent paid from cash",
    "reasoning": "Rent is an operating expense",
    "confidence_score": 0.92,
    "suggested_entries": [
        {"account_code": "6000", "debit_amount": 800.0, "credit_amount": 0, "description": "Rent"},
        {"account_id": "Cash", "account_code": 1001, "debit_amount": 0, "credit_amount": "800.00"},
    ],
    "rules_applied": ["expense_recognition"],
})


@pytest.fixture
def analysis_request():
    return AnalysisRequest(
        description="Office rent for April",
        amount=Decimal("800.00"),
        transaction_date=date(2024, 4, 1),
    )


def parse(text, request):
    return parse_proposal(text, provider="test", model_used="m", processing_time_ms=5, request=request)


class TestParseProposal:
    """Tests for parse_proposal."""

    def test_parses_entries(self, analysis_request):
        """Test a well-formed answer."""
        proposal = parse(GOOD_ANSWER, analysis_request)

        assert proposal.title == "Office rent"
        assert proposal.confidence_score == 0.92
        assert proposal.rules_applied == ["expense_recognition"]
        assert proposal.suggested_entries[0].account_code == "6000"
        assert proposal.suggested_entries[0].debit_amount == Decimal("800.0")
        assert proposal.suggested_entries[1].credit_amount == Decimal("800.00")

    def test_non_uuid_account_id_dropped(self, analysis_request):
        """Test that a name in account_id does not pass for an id."""
        proposal = parse(GOOD_ANSWER, analysis_request)
        assert proposal.suggested_entries[1].account_id is None
        assert proposal.suggested_entries[1].account_code == "1001"

    def test_think_block_and_prose_ignored(self, analysis_request):
        """Test answers wrapped in reasoning and prose."""
        text = f"<think>{{not json}}</think>Sure! Here it is:\n```json\n{GOOD_ANSWER}\n```"
        assert parse(text, analysis_request).title == "Office rent"

    def test_confidence_clamped(self, analysis_request):
        """Test that out-of-range confidence is clamped."""
        answer = json.loads(GOOD_ANSWER)
        answer["confidence_score"] = 1.7
        assert parse(json.dumps(answer), analysis_request).confidence_score == 1.0

    def test_title_defaults_to_description(self, analysis_request):
        """Test the fallback title."""
        answer = json.loads(GOOD_ANSWER)
        del answer["title"]
        assert parse(json.dumps(answer), analysis_request).title == "Analysis: Office rent for April"

    @pytest.mark.parametrize("text", [
        "",
        "I cannot help with that",
        "{not valid json}",
        json.dumps({"title": "No entries"}),
        json.dumps({"suggested_entries": [{"account_code": "6000", "debit_amount": "abc"}]}),
    ])
    def test_unusable_answers(self, analysis_request, text):
        """Test that unusable answers raise AnalysisError."""
        with pytest.raises(AnalysisError):
            parse(text, analysis_request)

    def test_prompt_lists_accounts(self, analysis_request, accounts):
        """Test that the prompt names the tenant's accounts."""
        prompt = build_analysis_prompt(analysis_request, list(accounts.values()))
        assert "1001 - Cash (assets) [debit]" in prompt
        assert "Office rent for April" in prompt


class TestMockProvider:
    """Tests for the keyword-rule provider."""

    def test_sale_rule(self):
        """Test that sales are booked as cash revenue."""
        proposal = asyncio.run(MockAnalysisProvider().analyze(
            AnalysisRequest(description="Sold 3 chairs to customer", amount=Decimal("90.00")),
            [],
        ))
        codes = [(l.account_code, l.debit_amount, l.credit_amount) for l in proposal.suggested_entries]
        assert codes == [
            ("1001", Decimal("90.00"), Decimal("0")),
            ("4000", Decimal("0"), Decimal("90.00")),
        ]
        assert proposal.rules_applied == ["cash_sale"]
        assert proposal.confidence_score == 0.80

    def test_fallback_rule(self, analysis_request):
        """Test that anything else is booked as a cash expense."""
        proposal = asyncio.run(MockAnalysisProvider().analyze(analysis_request, []))
        assert [l.account_code for l in proposal.suggested_entries] == ["6000", "1001"]
        assert proposal.rules_applied == ["expense_paid_in_cash"]
        assert proposal.provider == "mock"


class TestOllamaProvider:
    """Tests for the Ollama provider over a mock transport."""

    def test_chat_request_and_parse(self, analysis_request, accounts):
        """Test the request sent to Ollama and the parsed answer."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"message": {"role": "assistant", "content": GOOD_ANSWER}})

        provider = OllamaAnalysisProvider(
            OllamaSettings(endpoint="http://ollama.test", model_name="llama3"),
            transport=httpx.MockTransport(handler),
        )
        proposal = asyncio.run(provider.analyze(analysis_request, list(accounts.values())))

        assert seen["url"] == "http://ollama.test/api/chat"
        assert seen["body"]["model"] == "llama3"
        assert seen["body"]["stream"] is False
        assert "Office rent for April" in seen["body"]["messages"][1]["content"]
        assert proposal.provider == "ollama"
        assert proposal.model_used == "llama3"
        assert len(proposal.suggested_entries) == 2

    def test_http_error_becomes_analysis_error(self, analysis_request):
        """Test that a server error is reported as AnalysisError."""
        provider = OllamaAnalysisProvider(
            OllamaSettings(endpoint="http://ollama.test"),
            transport=httpx.MockTransport(lambda request: httpx.Response(500, text="model not loaded")),
        )
        with pytest.raises(AnalysisError):
            asyncio.run(provider.analyze(analysis_request, []))

    def test_unexpected_payload(self, analysis_request):
        """Test a response without a message."""
        provider = OllamaAnalysisProvider(
            OllamaSettings(endpoint="http://ollama.test"),
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"done": True})),
        )
        with pytest.raises(AnalysisError):
            asyncio.run(provider.analyze(analysis_request, []))


class TestGeminiProvider:
    """Tests for the Gemini provider with a fake model."""

    def test_generate_and_parse(self, analysis_request):
        """Test that the model's text is parsed into a proposal."""
        from ledger_core.services.providers.gemini import GeminiAnalysisProvider

        class FakeResponse:
            text = GOOD_ANSWER

        class FakeModel:
            async def generate_content_async(self, prompt):
                assert "Office rent for April" in prompt
                return FakeResponse()

        provider = GeminiAnalysisProvider(GeminiSettings(api_key="test-key"))
        provider._model = FakeModel()

        proposal = asyncio.run(provider.analyze(analysis_request, []))
        assert proposal.provider == "gemini"
        assert proposal.confidence_score == 0.92


class TestCreateProvider:
    """Tests for provider selection."""

    def test_mock_by_default(self, monkeypatch):
        """Test the default provider."""
        monkeypatch.delenv("AI_PROVIDER", raising=False)
        assert isinstance(create_provider(Settings()), MockAnalysisProvider)

    def test_ollama_selected(self, monkeypatch):
        """Test selection through AI_PROVIDER."""
        monkeypatch.setenv("AI_PROVIDER", "Ollama")
        assert isinstance(create_provider(Settings()), OllamaAnalysisProvider)
