"""
Deterministic mock provider.

Pattern-matches the description against a few keyword rules, in the
spirit of a rules engine, and proposes a two-line entry for the full
amount. Used in tests and when no model is configured.
"""

import time
from dataclasses import dataclass
from typing import Sequence

from ledger_core.models.ledger import Account, JournalLine
from ledger_core.models.suggestion import AnalysisRequest, ProviderProposal
from ledger_core.services.providers.base import AnalysisProvider

GENERAL_EXPENSE_CODE = "6000"
CASH_CODE = "1001"
REVENUE_CODE = "4000"


@dataclass(frozen=True)
class KeywordRule:
    name: str
    keywords: tuple[str, ...]
    debit_code: str
    credit_code: str
    confidence: float


RULES = (
    KeywordRule(
        name="cash_sale",
        keywords=("sale", "sold", "customer payment", "revenue", "deposit"),
        debit_code=CASH_CODE,
        credit_code=REVENUE_CODE,
        confidence=0.80,
    ),
)

FALLBACK_RULE = KeywordRule(
    name="expense_paid_in_cash",
    keywords=(),
    debit_code=GENERAL_EXPENSE_CODE,
    credit_code=CASH_CODE,
    confidence=0.75,
)


class MockAnalysisProvider(AnalysisProvider):
    """Keyword-rule provider with no external calls."""

    name = "mock"

    def __init__(self, model_name: str = "mock-rules"):
        self.model_name = model_name

    def match_rule(self, description: str) -> KeywordRule:
        text = description.lower()
        for rule in RULES:
            if any(keyword in text for keyword in rule.keywords):
                return rule
        return FALLBACK_RULE

    async def analyze(
        self,
        request: AnalysisRequest,
        accounts: Sequence[Account],
    ) -> ProviderProposal:
        started = time.perf_counter()
        rule = self.match_rule(request.description)

        entries = [
            JournalLine(
                account_code=rule.debit_code,
                debit_amount=request.amount,
                description=request.description,
            ),
            JournalLine(
                account_code=rule.credit_code,
                credit_amount=request.amount,
                description=f"Offset for {request.description}",
            ),
        ]
        return ProviderProposal(
            title=f"Analysis: {request.description}",
            description=f"Automated analysis for {request.description}",
            reasoning=(
                f'Matched rule "{rule.name}": debit {rule.debit_code}, '
                f"credit {rule.credit_code}."
            ),
            confidence_score=rule.confidence,
            suggested_entries=entries,
            rules_applied=[rule.name],
            provider=self.name,
            model_used=self.model_name,
            processing_time_ms=int((time.perf_counter() - started) * 1000),
        )
