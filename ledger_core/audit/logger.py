"""
Audit Logger

DESIGN DECISION: Every ledger mutation and review decision is logged.
This provides:
1. Complete traceability of postings, voids and reviews
2. Debugging capability when a posting is rejected
3. Compliance readiness for AI-originated entries

The audit logger:
- Is synchronous, like the ledger calls it sits next to
- Gracefully handles failures (a broken sink never fails a posting)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledger_core.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from ledger_core.models.ledger import ValidationIssue
from ledger_core.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def _issues_payload(issues: list[ValidationIssue]) -> list[dict]:
    return [issue.model_dump(exclude_none=True) for issue in issues]


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An optional AuditStorageInterface sink (in memory, Google Sheets)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("ledger_core.audit")

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # =========================================================================
    # POSTING
    # =========================================================================

    def log_transaction_posted(
        self,
        company_id: UUID,
        transaction_id: UUID,
        transaction_number: int,
        total_amount: str,
        actor_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.transaction_posted(
            company_id=company_id,
            transaction_id=transaction_id,
            transaction_number=transaction_number,
            total_amount=total_amount,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    def log_transaction_rejected(
        self,
        company_id: UUID,
        issues: list[ValidationIssue],
        difference: str,
        actor_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.transaction_rejected(
            company_id=company_id,
            issues=_issues_payload(issues),
            difference=difference,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    def log_transaction_voided(
        self,
        company_id: UUID,
        transaction_id: UUID,
        previous_status: str,
        actor_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.transaction_voided(
            company_id=company_id,
            transaction_id=transaction_id,
            previous_status=previous_status,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def log_account_created(self, company_id: UUID, account_id: UUID, code: str, name: str) -> None:
        self.log(AuditEventBuilder.account_created(company_id, account_id, code, name))

    def log_account_deactivated(self, company_id: UUID, account_id: UUID, code: str) -> None:
        self.log(AuditEventBuilder.account_deactivated(company_id, account_id, code))

    # =========================================================================
    # SUGGESTIONS
    # =========================================================================

    def log_suggestion_created(
        self,
        company_id: UUID,
        suggestion_id: UUID,
        agent_id: UUID,
        confidence: float,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.suggestion_created(
            company_id=company_id,
            suggestion_id=suggestion_id,
            agent_id=agent_id,
            confidence=confidence,
            correlation_id=correlation_id,
        ))

    def log_suggestion_reviewed(
        self,
        company_id: UUID,
        suggestion_id: UUID,
        approved: bool,
        reviewer_id: Optional[UUID],
        notes: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.suggestion_reviewed(
            company_id=company_id,
            suggestion_id=suggestion_id,
            approved=approved,
            reviewer_id=reviewer_id,
            notes=notes,
            correlation_id=correlation_id,
        ))

    def log_suggestion_implemented(
        self,
        company_id: UUID,
        suggestion_id: UUID,
        transaction_id: UUID,
        actor_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.suggestion_implemented(
            company_id=company_id,
            suggestion_id=suggestion_id,
            transaction_id=transaction_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    def log_suggestion_implement_failed(
        self,
        company_id: UUID,
        suggestion_id: UUID,
        issues: list[ValidationIssue],
        actor_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.suggestion_implement_failed(
            company_id=company_id,
            suggestion_id=suggestion_id,
            issues=_issues_payload(issues),
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    def log_state_conflict(
        self,
        company_id: UUID,
        entity_type: str,
        entity_id: UUID,
        current_status: str,
        attempted: str,
        actor_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.state_conflict(
            company_id=company_id,
            entity_type=entity_type,
            entity_id=entity_id,
            current_status=current_status,
            attempted=attempted,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    # =========================================================================
    # ANALYSIS
    # =========================================================================

    def log_analysis_completed(
        self,
        company_id: UUID,
        provider: str,
        model_used: str,
        confidence: float,
        processing_time_ms: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.analysis_completed(
            company_id=company_id,
            provider=provider,
            model_used=model_used,
            confidence=confidence,
            processing_time_ms=processing_time_ms,
            correlation_id=correlation_id,
        ))

    def log_analysis_failed(
        self,
        company_id: UUID,
        provider: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.analysis_failed(
            company_id=company_id,
            provider=provider,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    # =========================================================================
    # ERRORS
    # =========================================================================

    def log_error(
        self,
        error_type: str,
        error_message: str,
        company_id: Optional[UUID] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            company_id=company_id,
            details=details,
            correlation_id=correlation_id,
        ))

    def log_external_service_error(
        self,
        service: str,
        error_message: str,
        company_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            company_id=company_id,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., analyze a bank line).
    Pass it through all subsequent operations.
    """
    return uuid4()
