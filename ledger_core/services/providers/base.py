"""
AI Analysis Provider Interface

DESIGN DECISION: Every provider exposes one capability, analyze(), and
returns a ProviderProposal. The ledger does not care which model produced
it: a proposal is untrusted input and goes through exactly the same
validation as a manually typed entry.

CRITICAL BOUNDARIES:
- A provider CAN propose accounts and amounts
- A provider CANNOT write anything
- A provider that cannot produce a usable proposal raises AnalysisError;
  it never invents a fallback entry the caller did not ask for

The LLM is a TRANSLATOR, not an ACCOUNTANT.
"""

import json
import re
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Sequence
from uuid import UUID

from ledger_core.errors import AnalysisError
from ledger_core.models.ledger import Account, JournalLine
from ledger_core.models.suggestion import AnalysisRequest, ProviderProposal


SYSTEM_PROMPT = (
    "You are an expert accounting AI assistant specializing in "
    "GAAP-compliant double-entry journal entries."
)

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL)


class AnalysisProvider(ABC):
    """Abstract interface for AI analysis providers."""

    name: str = "provider"

    @abstractmethod
    async def analyze(
        self,
        request: AnalysisRequest,
        accounts: Sequence[Account],
    ) -> ProviderProposal:
        """
        Propose a journal entry for a business event.

        Args:
            request: The event to analyze
            accounts: The tenant's active accounts the proposal may use

        Returns:
            An unvalidated proposal

        Raises:
            AnalysisError: If the provider fails or its answer is unusable
        """
        pass


def build_analysis_prompt(request: AnalysisRequest, accounts: Sequence[Account]) -> str:
    """Prompt shared by the LLM-backed providers."""
    account_list = "\n".join(
        f"{a.code} - {a.name} ({a.type.value}) [{a.normal_balance.value}]"
        for a in accounts
    ) or "No accounts available"

    ocr = f"\n- OCR Data: {request.attachment_data}" if request.attachment_data else ""

    return f"""Analyze this business transaction and suggest a journal entry following GAAP principles.

TRANSACTION TO ANALYZE:
- Description: {request.description}
- Amount: {request.amount}
- Date: {request.transaction_date.isoformat()}
- Reference: {request.reference or 'None'}{ocr}

AVAILABLE ACCOUNTS (code - name (type) [normal balance]):
{account_list}

INSTRUCTIONS:
1. Use ONLY account codes from the list above
2. Debits must equal credits
3. Each entry has either a debit_amount or a credit_amount, never both
4. Give a confidence score between 0.0 and 1.0

Respond with ONLY a JSON object in this exact format:
{{
  "title": "Brief description of the journal entry",
  "description": "Detailed explanation of the transaction",
  "reasoning": "Why these accounts were chosen",
  "confidence_score": 0.9,
  "suggested_entries": [
    {{"account_code": "6000", "debit_amount": 100.00, "credit_amount": 0, "description": "..."}},
    {{"account_code": "1001", "debit_amount": 0, "credit_amount": 100.00, "description": "..."}}
  ],
  "rules_applied": ["rule1"]
}}"""


def _amount(value: Any) -> Decimal:
    if value in (None, ""):
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {value!r}") from e


def _account_id(value: Any) -> Optional[UUID]:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        # Models often put a code or a name here
        return None


def parse_proposal(
    text: str,
    provider: str,
    model_used: str,
    processing_time_ms: int,
    request: AnalysisRequest,
) -> ProviderProposal:
    """
    Parse a model's JSON answer into a ProviderProposal.

    Raises:
        AnalysisError: If no JSON object with entries can be found
    """
    cleaned = _THINK_BLOCK.sub("", text or "").strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}") + 1
    if start < 0 or end <= start:
        raise AnalysisError(provider, "Response contained no JSON object")

    try:
        data = json.loads(cleaned[start:end])
    except json.JSONDecodeError as e:
        raise AnalysisError(provider, f"Response was not valid JSON: {e}") from e

    raw_entries = data.get("suggested_entries")
    if not isinstance(raw_entries, list) or not raw_entries:
        raise AnalysisError(provider, "Response has no suggested_entries")

    try:
        entries = [
            JournalLine(
                account_id=_account_id(raw.get("account_id")),
                account_code=str(raw["account_code"]).strip() if raw.get("account_code") else None,
                debit_amount=_amount(raw.get("debit_amount")),
                credit_amount=_amount(raw.get("credit_amount")),
                description=raw.get("description"),
            )
            for raw in raw_entries
        ]
        confidence = float(data.get("confidence_score", 0.5))
    except (ValueError, TypeError, AttributeError) as e:
        raise AnalysisError(provider, f"Malformed entry in response: {e}") from e

    return ProviderProposal(
        title=data.get("title") or f"Analysis: {request.description}",
        description=data.get("description"),
        reasoning=data.get("reasoning") or "",
        confidence_score=min(max(confidence, 0.0), 1.0),
        suggested_entries=entries,
        rules_applied=[str(rule) for rule in data.get("rules_applied") or []],
        provider=provider,
        model_used=model_used,
        processing_time_ms=processing_time_ms,
    )
