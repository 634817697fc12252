"""
Main Orchestrator for Ledger Core

This module ties together all the components and defines the
end-to-end flows for:
1. Manual posting (request → validate → post)
2. AI analysis (event → provider → suggestion → review policy)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Provider output only ever becomes a suggestion
- A suggestion skips human review only when the agent's policy says so
- Every step is audited under one correlation id

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from typing import Optional, Sequence
from uuid import UUID

import structlog

from ledger_core.audit import AuditLogger, create_correlation_id
from ledger_core.config import Settings, get_settings
from ledger_core.errors import AnalysisError, LedgerValidationError, NotFoundError
from ledger_core.ledger import (
    AccountRegistry,
    BalanceCalculator,
    GeneralLedgerQuery,
    TransactionPoster,
)
from ledger_core.models.ledger import JournalLine, LedgerFilter
from ledger_core.models.suggestion import (
    AISuggestion,
    AnalysisOutcome,
    AnalysisRequest,
    SuggestionStatus,
)
from ledger_core.services.providers import AnalysisProvider, create_provider
from ledger_core.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    LedgerStoreInterface,
    SQLLedgerStore,
)
from ledger_core.validation import JournalValidator
from ledger_core.workflow import AgentPolicy, SuggestionWorkflow

logger = structlog.get_logger(__name__)


class AnalysisFlow:
    """
    Orchestrates the AI analysis flow.

    Flow:
    1. Analyze → provider proposes entries (the only async step)
    2. Resolve → account codes become tenant account ids
    3. Suggest → stored as a pending suggestion
    4. Policy → auto-approve and implement only if the agent allows it

    Without an auto-approving agent the suggestion waits for a reviewer.
    """

    def __init__(
        self,
        workflow: SuggestionWorkflow,
        accounts: AccountRegistry,
        provider: AnalysisProvider,
        audit_logger: Optional[AuditLogger] = None,
        policy: Optional[AgentPolicy] = None,
    ):
        self._workflow = workflow
        self._accounts = accounts
        self._provider = provider
        self._audit = audit_logger or AuditLogger()
        self._policy = policy or AgentPolicy()

    async def analyze_transaction(
        self,
        company_id: UUID,
        request: AnalysisRequest,
        agent_id: Optional[UUID] = None,
        user_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AnalysisOutcome:
        """
        Turn a business event into a suggestion.

        Raises:
            AnalysisError: If the provider fails (nothing is written)
            NotFoundError: If agent_id is given but unknown
        """
        correlation_id = correlation_id or create_correlation_id()

        if agent_id is not None:
            agent = self._workflow.get_agent(company_id, agent_id)
        else:
            agent = self._workflow.get_or_create_accounting_agent(company_id)

        accounts = self._accounts.list_accounts(company_id, active_only=True)
        try:
            proposal = await self._provider.analyze(request, accounts)
        except AnalysisError as e:
            self._audit.log_analysis_failed(
                company_id=company_id,
                provider=self._provider.name,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        self._audit.log_analysis_completed(
            company_id=company_id,
            provider=proposal.provider,
            model_used=proposal.model_used,
            confidence=proposal.confidence_score,
            processing_time_ms=proposal.processing_time_ms,
            correlation_id=correlation_id,
        )

        suggestion = self._workflow.create(
            company_id=company_id,
            agent_id=agent.id,
            suggested_entries=self.resolve_account_codes(company_id, proposal.suggested_entries),
            confidence_score=proposal.confidence_score,
            metadata={
                "provider": proposal.provider,
                "model_used": proposal.model_used,
                "processing_time_ms": proposal.processing_time_ms,
                "rules_applied": proposal.rules_applied,
            },
            title=proposal.title,
            description=proposal.description,
            reasoning=proposal.reasoning,
            original_data=request.model_dump(mode="json"),
            correlation_id=correlation_id,
        )

        if not self._policy.should_auto_approve(agent, proposal.confidence_score):
            return AnalysisOutcome(suggestion=suggestion, proposal=proposal)

        implement_errors = []
        try:
            suggestion = self._workflow.approve(
                company_id,
                suggestion.id,
                reviewer_id=user_id,
                notes=(
                    f"Auto-approved: confidence {proposal.confidence_score:.2f} "
                    f">= threshold {agent.confidence_threshold:.2f}"
                ),
                auto_implement=True,
                correlation_id=correlation_id,
            )
        except LedgerValidationError as e:
            implement_errors = e.issues
            suggestion = self._workflow.get_suggestion(company_id, suggestion.id)

        return AnalysisOutcome(
            suggestion=suggestion,
            proposal=proposal,
            auto_approved=True,
            transaction_id=suggestion.implemented_transaction_id,
            implement_errors=implement_errors,
        )

    def resolve_account_codes(
        self,
        company_id: UUID,
        lines: Sequence[JournalLine],
    ) -> list[JournalLine]:
        """
        Fill account_id from account_code where only the code is known.

        Unknown codes are left unresolved; the validator reports them
        when the suggestion is implemented.
        """
        resolved = []
        for line in lines:
            if line.account_id is None and line.account_code:
                try:
                    account = self._accounts.resolve_system_account(company_id, line.account_code)
                    line = line.model_copy(update={"account_id": account.id})
                except NotFoundError:
                    logger.info(
                        "account_code_unresolved",
                        company_id=str(company_id),
                        account_code=line.account_code,
                    )
            resolved.append(line)
        return resolved


class LedgerApp:
    """
    All ledger components wired to one store and one audit logger.

    Usage:
        app = create_app_components()
        result = app.poster.create_transaction(request)
        tb = app.balances.get_trial_balance(company_id, as_of)
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        provider: AnalysisProvider,
        audit_logger: AuditLogger,
        settings: Settings,
        sheets_client: Optional[GoogleSheetsClient] = None,
    ):
        ledger_settings = settings.ledger
        self.store = store
        self.audit_logger = audit_logger
        self.sheets_client = sheets_client
        self.validator = JournalValidator(store, tolerance=ledger_settings.balance_tolerance)
        self.accounts = AccountRegistry(store, audit_logger)
        self.poster = TransactionPoster(store, self.validator, audit_logger, ledger_settings)
        self.balances = BalanceCalculator(store, tolerance=ledger_settings.balance_tolerance)
        self.workflow = SuggestionWorkflow(store, self.poster, audit_logger, settings.ai)
        self.analysis = AnalysisFlow(self.workflow, self.accounts, provider, audit_logger)

    def query_general_ledger(self, ledger_filter: LedgerFilter) -> GeneralLedgerQuery:
        return GeneralLedgerQuery(self.store, ledger_filter)

    def pending_suggestions(self, company_id: UUID, limit: int = 100) -> list[AISuggestion]:
        """Review queue of a tenant, newest first."""
        return self.workflow.list_suggestions(
            company_id, status=SuggestionStatus.PENDING, limit=limit
        )


def create_app_components(
    store: Optional[LedgerStoreInterface] = None,
    provider: Optional[AnalysisProvider] = None,
    use_sheets_audit: bool = False,
    audit_storage: Optional[AuditStorageInterface] = None,
    settings: Optional[Settings] = None,
) -> LedgerApp:
    """
    Factory function to create all application components.

    Args:
        store: Ledger store. Defaults to a SQL store on DATABASE_URL
               with its schema created.
        provider: Analysis provider. Defaults to the AI_PROVIDER setting.
        use_sheets_audit: Mirror the audit trail to Google Sheets.
                          Falls back to local-only logging if not configured.
        audit_storage: Explicit audit sink (overrides use_sheets_audit).

    Returns:
        LedgerApp with every component wired
    """
    settings = settings or get_settings()

    if store is None:
        database = settings.database
        sql_store = SQLLedgerStore.from_url(database.url, echo=database.echo)
        sql_store.create_schema()
        store = sql_store

    sheets_client = None
    if audit_storage is None and use_sheets_audit:
        try:
            sheets_client = GoogleSheetsClient(settings.google_sheets)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Sheets not configured - continue with local-only logging
            logger.warning("audit_sheets_not_configured", error=str(e))
            sheets_client = None
            audit_storage = None

    return LedgerApp(
        store=store,
        provider=provider or create_provider(settings),
        audit_logger=AuditLogger(audit_storage),
        settings=settings,
        sheets_client=sheets_client,
    )
