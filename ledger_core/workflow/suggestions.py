"""
Suggestion Workflow

CRITICAL: AI output never reaches the ledger directly. It becomes a
suggestion, and a suggestion only moves along

    pending → approved → implemented
    pending → rejected

Every transition is an optimistic status check at mutation time: the
store applies the change only if the status is still the one this step
requires. A reviewer who loses a race gets a StateConflictError that
names the status the suggestion actually has.

Implementing posts the suggested entries through the same TransactionPoster
as a manual entry. The post and the approved → implemented update commit
as one unit, so a retried or concurrent implement can never create a
second transaction.
"""

from datetime import date, datetime
from typing import Any, Optional, Sequence
from uuid import UUID

import structlog
from pydantic import TypeAdapter, ValidationError

from ledger_core.audit import AuditLogger
from ledger_core.config import AISettings, get_settings
from ledger_core.errors import LedgerValidationError, NotFoundError, StateConflictError
from ledger_core.ledger.poster import TransactionPoster
from ledger_core.models.ledger import JournalLine, TransactionRequest, TransactionType, ValidationIssue
from ledger_core.models.suggestion import (
    AgentPerformance,
    AgentType,
    AIAgent,
    AISuggestion,
    SuggestionStatus,
)
from ledger_core.services.storage import LedgerStoreInterface

logger = structlog.get_logger(__name__)

_PAGE_SIZE = 500
_DATE = TypeAdapter(date)


class AgentPolicy:
    """Decides whether a fresh suggestion may skip human review."""

    @staticmethod
    def should_auto_approve(agent: AIAgent, confidence_score: float) -> bool:
        return (
            agent.is_active
            and agent.auto_approve
            and confidence_score >= agent.confidence_threshold
        )


class SuggestionWorkflow:
    """
    Review state machine for AI suggestions.

    Usage:
        workflow = SuggestionWorkflow(store, poster)
        suggestion = workflow.create(company_id, agent.id, lines, 0.92)
        workflow.approve(company_id, suggestion.id, reviewer_id, auto_implement=True)
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        poster: TransactionPoster,
        audit_logger: Optional[AuditLogger] = None,
        ai_settings: Optional[AISettings] = None,
    ):
        self._store = store
        self._poster = poster
        self._audit = audit_logger or AuditLogger()
        self._ai_settings = ai_settings

    # =========================================================================
    # CREATE & READ
    # =========================================================================

    def create(
        self,
        company_id: UUID,
        agent_id: UUID,
        suggested_entries: Sequence[JournalLine],
        confidence_score: float,
        metadata: Optional[dict[str, Any]] = None,
        title: Optional[str] = None,
        description: Optional[str] = None,
        reasoning: Optional[str] = None,
        original_data: Optional[dict[str, Any]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AISuggestion:
        """
        Store a new pending suggestion.

        The entries are kept as proposed; they are validated when the
        suggestion is implemented.

        Raises:
            NotFoundError: If the agent does not exist for this tenant
        """
        if self._store.get_agent(company_id, agent_id) is None:
            raise NotFoundError("agent", agent_id, company_id)

        fields: dict[str, Any] = {
            "company_id": company_id,
            "agent_id": agent_id,
            "suggested_entries": list(suggested_entries),
            "confidence_score": confidence_score,
            "metadata": metadata or {},
            "description": description,
            "reasoning": reasoning,
            "original_data": original_data or {},
        }
        if title:
            fields["title"] = title
        suggestion = AISuggestion(**fields)

        with self._store.atomic():
            self._store.add_suggestion(suggestion)
            self._store.increment_agent_counters(company_id, agent_id, made=1)

        self._audit.log_suggestion_created(
            company_id=company_id,
            suggestion_id=suggestion.id,
            agent_id=agent_id,
            confidence=confidence_score,
            correlation_id=correlation_id,
        )
        return suggestion

    def get_suggestion(self, company_id: UUID, suggestion_id: UUID) -> AISuggestion:
        suggestion = self._store.get_suggestion(company_id, suggestion_id)
        if suggestion is None:
            raise NotFoundError("suggestion", suggestion_id, company_id)
        return suggestion

    def list_suggestions(
        self,
        company_id: UUID,
        status: Optional[SuggestionStatus] = None,
        agent_id: Optional[UUID] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AISuggestion]:
        """Suggestions newest first."""
        return self._store.list_suggestions(
            company_id, status=status, agent_id=agent_id, limit=limit, offset=offset
        )

    # =========================================================================
    # REVIEW
    # =========================================================================

    def approve(
        self,
        company_id: UUID,
        suggestion_id: UUID,
        reviewer_id: Optional[UUID],
        notes: Optional[str] = None,
        auto_implement: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> AISuggestion:
        """
        pending → approved, optionally followed by implement.

        Raises:
            NotFoundError: If the suggestion does not exist for this tenant
            StateConflictError: If it is no longer pending
            LedgerValidationError: If auto_implement is set and the entries
                are rejected (the suggestion stays approved)
        """
        approved = self._store.update_suggestion_if_status(
            company_id,
            suggestion_id,
            SuggestionStatus.PENDING,
            status=SuggestionStatus.APPROVED,
            reviewed_by=reviewer_id,
            reviewed_at=datetime.utcnow(),
            review_notes=notes,
        )
        if approved is None:
            self._raise_conflict(company_id, suggestion_id, "approve", reviewer_id, correlation_id)

        self._audit.log_suggestion_reviewed(
            company_id=company_id,
            suggestion_id=suggestion_id,
            approved=True,
            reviewer_id=reviewer_id,
            notes=notes,
            correlation_id=correlation_id,
        )

        if auto_implement:
            return self.implement(company_id, suggestion_id, reviewer_id, correlation_id)
        return approved

    def reject(
        self,
        company_id: UUID,
        suggestion_id: UUID,
        reviewer_id: Optional[UUID],
        notes: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AISuggestion:
        """
        pending → rejected. Terminal.

        Raises:
            NotFoundError: If the suggestion does not exist for this tenant
            StateConflictError: If it is no longer pending
        """
        with self._store.atomic():
            rejected = self._store.update_suggestion_if_status(
                company_id,
                suggestion_id,
                SuggestionStatus.PENDING,
                status=SuggestionStatus.REJECTED,
                reviewed_by=reviewer_id,
                reviewed_at=datetime.utcnow(),
                review_notes=notes,
            )
            if rejected is not None:
                self._store.increment_agent_counters(company_id, rejected.agent_id, rejected=1)

        if rejected is None:
            self._raise_conflict(company_id, suggestion_id, "reject", reviewer_id, correlation_id)

        self._audit.log_suggestion_reviewed(
            company_id=company_id,
            suggestion_id=suggestion_id,
            approved=False,
            reviewer_id=reviewer_id,
            notes=notes,
            correlation_id=correlation_id,
        )
        return rejected

    def implement(
        self,
        company_id: UUID,
        suggestion_id: UUID,
        user_id: Optional[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> AISuggestion:
        """
        approved → implemented by posting the suggested entries.

        Raises:
            NotFoundError: If the suggestion does not exist for this tenant
            StateConflictError: If it is not approved, or was implemented
                already (including by a concurrent call)
            LedgerValidationError: If the poster rejects the entries; the
                suggestion stays approved
        """
        suggestion = self.get_suggestion(company_id, suggestion_id)
        if (
            suggestion.status != SuggestionStatus.APPROVED
            or suggestion.implemented_transaction_id is not None
        ):
            self._raise_conflict(company_id, suggestion_id, "implement", user_id, correlation_id)

        try:
            request = self._to_transaction_request(suggestion, user_id)
            with self._store.atomic():
                result = self._poster.post_unaudited(request)
                if not result.success:
                    raise LedgerValidationError(result.errors)

                implemented = self._store.update_suggestion_if_status(
                    company_id,
                    suggestion_id,
                    SuggestionStatus.APPROVED,
                    status=SuggestionStatus.IMPLEMENTED,
                    implemented_transaction_id=result.transaction.id,
                    implemented_at=datetime.utcnow(),
                )
                if implemented is None:
                    # Another implement committed first; roll our posting back
                    latest = self._store.get_suggestion(company_id, suggestion_id)
                    raise StateConflictError(
                        "suggestion",
                        suggestion_id,
                        latest.status.value if latest else "missing",
                        "implement",
                    )
                self._store.increment_agent_counters(company_id, suggestion.agent_id, accepted=1)
        except LedgerValidationError as e:
            logger.info("suggestion_implement_failed", suggestion_id=str(suggestion_id))
            self._audit.log_suggestion_implement_failed(
                company_id=company_id,
                suggestion_id=suggestion_id,
                issues=e.issues,
                actor_id=user_id,
                correlation_id=correlation_id,
            )
            raise
        except StateConflictError as e:
            self._audit.log_state_conflict(
                company_id=company_id,
                entity_type="suggestion",
                entity_id=suggestion_id,
                current_status=e.current_status,
                attempted="implement",
                actor_id=user_id,
                correlation_id=correlation_id,
            )
            raise

        self._audit.log_transaction_posted(
            company_id=company_id,
            transaction_id=result.transaction.id,
            transaction_number=result.transaction.transaction_number,
            total_amount=str(result.transaction.total_amount),
            actor_id=user_id,
            correlation_id=correlation_id,
        )
        self._audit.log_suggestion_implemented(
            company_id=company_id,
            suggestion_id=suggestion_id,
            transaction_id=result.transaction.id,
            actor_id=user_id,
            correlation_id=correlation_id,
        )
        return implemented

    def _to_transaction_request(
        self,
        suggestion: AISuggestion,
        user_id: Optional[UUID],
    ) -> TransactionRequest:
        """
        Suggested entries become a journal entry request.

        original_data is free-form, so a bad date or reference is reported
        as a validation issue rather than raised as it is.
        """
        raw_date = suggestion.original_data.get("transaction_date")
        try:
            transaction_date = _DATE.validate_python(raw_date) if raw_date else date.today()
        except ValidationError as e:
            raise LedgerValidationError([ValidationIssue(
                field="transaction_date",
                issue_type="invalid_date",
                message=f"Suggested transaction date {raw_date!r} is not a valid date",
                suggested_fix="Use an ISO date such as 2024-01-15",
            )]) from e

        try:
            return TransactionRequest(
                company_id=suggestion.company_id,
                transaction_date=transaction_date,
                type=TransactionType.JOURNAL_ENTRY,
                description=suggestion.title,
                reference=suggestion.original_data.get("reference"),
                memo=suggestion.reasoning,
                entries=suggestion.suggested_entries,
                created_by=user_id,
                is_ai_generated=True,
                ai_metadata={
                    "suggestion_id": str(suggestion.id),
                    "agent_id": str(suggestion.agent_id),
                    "confidence_score": suggestion.confidence_score,
                },
            )
        except ValidationError as e:
            raise LedgerValidationError([
                ValidationIssue(
                    field=".".join(str(part) for part in error["loc"]) or "request",
                    issue_type="invalid_request",
                    message=error["msg"],
                )
                for error in e.errors()
            ]) from e

    def _raise_conflict(
        self,
        company_id: UUID,
        suggestion_id: UUID,
        attempted: str,
        actor_id: Optional[UUID],
        correlation_id: Optional[UUID],
    ) -> None:
        current = self._store.get_suggestion(company_id, suggestion_id)
        if current is None:
            raise NotFoundError("suggestion", suggestion_id, company_id)

        self._audit.log_state_conflict(
            company_id=company_id,
            entity_type="suggestion",
            entity_id=suggestion_id,
            current_status=current.status.value,
            attempted=attempted,
            actor_id=actor_id,
            correlation_id=correlation_id,
        )
        raise StateConflictError("suggestion", suggestion_id, current.status.value, attempted)

    # =========================================================================
    # AGENTS
    # =========================================================================

    def get_agent(self, company_id: UUID, agent_id: UUID) -> AIAgent:
        agent = self._store.get_agent(company_id, agent_id)
        if agent is None:
            raise NotFoundError("agent", agent_id, company_id)
        return agent

    def get_or_create_accounting_agent(self, company_id: UUID) -> AIAgent:
        """The tenant's accounting agent, created on first use."""
        for agent in self._store.list_agents(company_id, type=AgentType.ACCOUNTING):
            if agent.is_active:
                return agent

        settings = self._ai_settings or get_settings().ai
        agent = AIAgent(
            company_id=company_id,
            name="Accounting Assistant",
            type=AgentType.ACCOUNTING,
            description="AI agent for automated journal entry suggestions and transaction analysis",
            confidence_threshold=settings.default_confidence_threshold,
            auto_approve=False,
        )
        with self._store.atomic():
            self._store.add_agent(agent)
        logger.info("accounting_agent_created", company_id=str(company_id), agent_id=str(agent.id))
        return agent

    def get_agent_performance(self, company_id: UUID, agent_id: UUID) -> AgentPerformance:
        """Counts per status, average confidence and accuracy of one agent."""
        agent = self.get_agent(company_id, agent_id)

        suggestions: list[AISuggestion] = []
        offset = 0
        while True:
            page = self._store.list_suggestions(
                company_id, agent_id=agent_id, limit=_PAGE_SIZE, offset=offset
            )
            suggestions.extend(page)
            if len(page) < _PAGE_SIZE:
                break
            offset += _PAGE_SIZE

        counts = {status: 0 for status in SuggestionStatus}
        for suggestion in suggestions:
            counts[suggestion.status] += 1

        average = (
            round(sum(s.confidence_score for s in suggestions) / len(suggestions), 4)
            if suggestions else 0.0
        )
        return AgentPerformance(
            agent=agent,
            total_suggestions=len(suggestions),
            pending=counts[SuggestionStatus.PENDING],
            approved=counts[SuggestionStatus.APPROVED],
            rejected=counts[SuggestionStatus.REJECTED],
            implemented=counts[SuggestionStatus.IMPLEMENTED],
            average_confidence=average,
            accuracy_rate=agent.accuracy_rate,
        )
