"""
Integration tests for the analysis flow and the app factory.

The mock provider stands in for every model; nothing leaves the process.
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import seed_chart
from ledger_core.config import Settings
from ledger_core.errors import AnalysisError, NotFoundError
from ledger_core.models import (
    AIAgent,
    AnalysisRequest,
    AuditEventType,
    JournalLine,
    LedgerFilter,
    SuggestionStatus,
    TransactionRequest,
    TransactionStatus,
)
from ledger_core.orchestrator import create_app_components
from ledger_core.services.providers import AnalysisProvider, MockAnalysisProvider
from ledger_core.services.storage import InMemoryLedgerStore, SQLLedgerStore


class BrokenProvider(AnalysisProvider):
    name = "broken"

    async def analyze(self, request, accounts):
        raise AnalysisError(self.name, "model unavailable")


@pytest.fixture
def app(store, audit_storage):
    return create_app_components(
        store=store,
        provider=MockAnalysisProvider(),
        audit_storage=audit_storage,
        settings=Settings(),
    )


@pytest.fixture
def auto_agent(store, company_id):
    agent = AIAgent(
        company_id=company_id,
        name="Trusted bookkeeper",
        confidence_threshold=0.75,
        auto_approve=True,
    )
    store.add_agent(agent)
    return agent


def analyze(app, company_id, description, amount="120.00", **kwargs):
    request = AnalysisRequest(
        description=description,
        amount=Decimal(amount),
        transaction_date=date(2024, 4, 2),
        reference="REC-77",
    )
    return asyncio.run(app.analysis.analyze_transaction(company_id, request, **kwargs))


class TestAnalysisFlow:
    """Tests for AnalysisFlow.analyze_transaction."""

    def test_default_agent_leaves_suggestion_pending(self, app, store, company_id, accounts):
        """Test that without an auto-approving agent a reviewer decides."""
        outcome = analyze(app, company_id, "Printer paper")

        assert not outcome.auto_approved
        assert outcome.transaction_id is None
        assert outcome.suggestion.status == SuggestionStatus.PENDING
        assert store.list_transactions(company_id) == []
        assert app.pending_suggestions(company_id)[0].id == outcome.suggestion.id

    def test_account_codes_resolved_to_ids(self, app, company_id, accounts):
        """Test that proposed codes become tenant account ids."""
        outcome = analyze(app, company_id, "Printer paper")
        lines = outcome.suggestion.suggested_entries
        assert [l.account_id for l in lines] == [accounts["6000"].id, accounts["1001"].id]

    def test_metadata_and_original_data(self, app, company_id, accounts):
        """Test what is recorded about the analysis."""
        outcome = analyze(app, company_id, "Cash sale to walk-in customer")
        suggestion = outcome.suggestion

        assert suggestion.metadata["provider"] == "mock"
        assert suggestion.metadata["rules_applied"] == ["cash_sale"]
        assert suggestion.original_data["transaction_date"] == "2024-04-02"
        assert suggestion.original_data["reference"] == "REC-77"
        assert suggestion.confidence_score == 0.80

    def test_auto_approve_implements(self, app, company_id, accounts, auto_agent):
        """Test that a trusted agent above threshold posts immediately."""
        outcome = analyze(app, company_id, "Cash sale to walk-in customer", agent_id=auto_agent.id)

        assert outcome.auto_approved
        assert outcome.suggestion.status == SuggestionStatus.IMPLEMENTED
        posted = app.poster.get_transaction(company_id, outcome.transaction_id)
        assert posted.transaction.status == TransactionStatus.POSTED
        assert posted.transaction.transaction_date == date(2024, 4, 2)
        assert app.balances.get_account_balance(company_id, accounts["4000"].id).balance == Decimal("120.00")

    def test_below_threshold_stays_pending(self, app, store, company_id, accounts):
        """Test that confidence under the threshold needs review."""
        picky = AIAgent(company_id=company_id, name="Picky", confidence_threshold=0.9, auto_approve=True)
        store.add_agent(picky)

        outcome = analyze(app, company_id, "Cash sale", agent_id=picky.id)
        assert not outcome.auto_approved
        assert outcome.suggestion.status == SuggestionStatus.PENDING

    def test_auto_approved_but_invalid_stays_approved(
        self, app, store, company_id, accounts, auto_agent
    ):
        """Test that a failed auto-implement is reported, not raised."""
        store.set_account_active(company_id, accounts["6000"].id, False)

        outcome = analyze(app, company_id, "Printer paper", agent_id=auto_agent.id)

        assert outcome.auto_approved
        assert outcome.transaction_id is None
        assert outcome.suggestion.status == SuggestionStatus.APPROVED
        assert [i.issue_type for i in outcome.implement_errors] == ["inactive_account"]

    def test_provider_failure_writes_nothing(self, store, company_id, accounts, audit_storage):
        """Test that a failing provider raises and leaves no suggestion."""
        app = create_app_components(
            store=store,
            provider=BrokenProvider(),
            audit_storage=audit_storage,
            settings=Settings(),
        )
        with pytest.raises(AnalysisError):
            analyze(app, company_id, "Printer paper")

        assert app.workflow.list_suggestions(company_id) == []
        event_types = [e.event_type for e in audit_storage.get_recent_events()]
        assert AuditEventType.ANALYSIS_FAILED in event_types

    def test_unknown_code_left_unresolved(self, app, company_id, accounts):
        """Test that codes the tenant does not have stay as codes."""
        resolved = app.analysis.resolve_account_codes(company_id, [
            JournalLine(account_code="9999", debit_amount=Decimal("1.00")),
            JournalLine(account_code="1001", credit_amount=Decimal("1.00")),
        ])
        assert resolved[0].account_id is None
        assert resolved[0].account_code == "9999"
        assert resolved[1].account_id == accounts["1001"].id

    def test_unknown_agent(self, app, company_id, accounts):
        """Test that an explicit agent must exist."""
        with pytest.raises(NotFoundError):
            analyze(app, company_id, "Printer paper", agent_id=uuid4())


class TestCreateAppComponents:
    """Tests for the factory."""

    def test_defaults_to_sql_store(self, monkeypatch):
        """Test that the SQL store on DATABASE_URL is used by default."""
        monkeypatch.setenv("DATABASE_URL", "sqlite://")
        monkeypatch.setenv("AI_PROVIDER", "mock")

        app = create_app_components(settings=Settings())

        assert isinstance(app.store, SQLLedgerStore)
        assert isinstance(app.analysis._provider, MockAnalysisProvider)

    def test_sheets_audit_falls_back_to_local(self, monkeypatch, store):
        """Test that missing Sheets configuration does not stop the app."""
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        app = create_app_components(
            store=store,
            provider=MockAnalysisProvider(),
            use_sheets_audit=True,
            settings=Settings(),
        )
        assert app.sheets_client is None

    def test_query_general_ledger(self, company_id):
        """Test the facade over the general ledger query."""
        store = InMemoryLedgerStore()
        accounts = seed_chart(store, company_id)
        app = create_app_components(store=store, provider=MockAnalysisProvider(), settings=Settings())
        app.poster.create_transaction(
            TransactionRequest(
                company_id=company_id,
                transaction_date=date(2024, 1, 1),
                entries=[
                    JournalLine(account_id=accounts["1001"].id, debit_amount=Decimal("5.00")),
                    JournalLine(account_id=accounts["3000"].id, credit_amount=Decimal("5.00")),
                ],
            )
        )
        lines = list(app.query_general_ledger(LedgerFilter(company_id=company_id)))
        assert len(lines) == 2
