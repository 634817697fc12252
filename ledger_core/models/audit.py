"""
Audit Models for Ledger Core

Every ledger mutation and every review decision is logged for audit purposes.
This provides:
1. Complete traceability of who posted, voided, approved or rejected what
2. Debugging information when a posting is rejected
3. Compliance and accountability for AI-originated entries

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Posting
    TRANSACTION_POSTED = "transaction_posted"
    TRANSACTION_REJECTED = "transaction_rejected"
    TRANSACTION_VOIDED = "transaction_voided"

    # Accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_DEACTIVATED = "account_deactivated"

    # Suggestion review
    SUGGESTION_CREATED = "suggestion_created"
    SUGGESTION_APPROVED = "suggestion_approved"
    SUGGESTION_REJECTED = "suggestion_rejected"
    SUGGESTION_IMPLEMENTED = "suggestion_implemented"
    SUGGESTION_IMPLEMENT_FAILED = "suggestion_implement_failed"
    STATE_CONFLICT = "state_conflict"

    # AI analysis
    ANALYSIS_COMPLETED = "analysis_completed"
    ANALYSIS_FAILED = "analysis_failed"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Tenant and entity
    company_id: Optional[UUID] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'suggestion', 'account')"
    )
    entity_id: Optional[UUID] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., analyze → create → implement)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    actor_id: Optional[UUID] = Field(
        default=None,
        description="User who triggered the event, if any"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "company_id": str(self.company_id) if self.company_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "actor_id": str(self.actor_id) if self.actor_id else None,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, company_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message,
         actor_id]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            str(self.company_id) if self.company_id else "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.actor_id) if self.actor_id else "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_posted(company_id, txn_id, ...)
        event = AuditEventBuilder.suggestion_rejected(company_id, suggestion_id, ...)
    """

    @staticmethod
    def transaction_posted(
        company_id: UUID,
        transaction_id: UUID,
        transaction_number: int,
        total_amount: str,
        actor_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_POSTED,
            company_id=company_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction {transaction_number} posted ({total_amount})",
            details={
                "transaction_number": transaction_number,
                "total_amount": total_amount,
            },
            actor_id=actor_id,
        )

    @staticmethod
    def transaction_rejected(
        company_id: UUID,
        issues: list[dict],
        difference: str,
        actor_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_REJECTED,
            severity=AuditSeverity.WARNING,
            company_id=company_id,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Posting rejected with {len(issues)} issues",
            details={
                "issues": issues,
                "difference": difference,
            },
            actor_id=actor_id,
        )

    @staticmethod
    def transaction_voided(
        company_id: UUID,
        transaction_id: UUID,
        previous_status: str,
        actor_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_VOIDED,
            company_id=company_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction voided",
            details={"previous_status": previous_status},
            actor_id=actor_id,
        )

    @staticmethod
    def account_created(
        company_id: UUID,
        account_id: UUID,
        code: str,
        name: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            company_id=company_id,
            entity_type="account",
            entity_id=account_id,
            description=f"Account {code} - {name} created",
            details={"code": code, "name": name},
        )

    @staticmethod
    def account_deactivated(
        company_id: UUID,
        account_id: UUID,
        code: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_DEACTIVATED,
            company_id=company_id,
            entity_type="account",
            entity_id=account_id,
            description=f"Account {code} deactivated",
            details={"code": code},
        )

    @staticmethod
    def suggestion_created(
        company_id: UUID,
        suggestion_id: UUID,
        agent_id: UUID,
        confidence: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUGGESTION_CREATED,
            company_id=company_id,
            entity_type="suggestion",
            entity_id=suggestion_id,
            correlation_id=correlation_id,
            description=f"Suggestion created with {confidence:.0%} confidence",
            details={
                "agent_id": str(agent_id),
                "confidence_score": confidence,
            },
        )

    @staticmethod
    def suggestion_reviewed(
        company_id: UUID,
        suggestion_id: UUID,
        approved: bool,
        reviewer_id: Optional[UUID],
        notes: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.SUGGESTION_APPROVED
                if approved
                else AuditEventType.SUGGESTION_REJECTED
            ),
            company_id=company_id,
            entity_type="suggestion",
            entity_id=suggestion_id,
            correlation_id=correlation_id,
            description=f"Suggestion {'approved' if approved else 'rejected'}",
            details={"review_notes": notes or ""},
            actor_id=reviewer_id,
        )

    @staticmethod
    def suggestion_implemented(
        company_id: UUID,
        suggestion_id: UUID,
        transaction_id: UUID,
        actor_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUGGESTION_IMPLEMENTED,
            company_id=company_id,
            entity_type="suggestion",
            entity_id=suggestion_id,
            correlation_id=correlation_id,
            description="Suggestion posted to the ledger",
            details={"transaction_id": str(transaction_id)},
            actor_id=actor_id,
        )

    @staticmethod
    def suggestion_implement_failed(
        company_id: UUID,
        suggestion_id: UUID,
        issues: list[dict],
        actor_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUGGESTION_IMPLEMENT_FAILED,
            severity=AuditSeverity.WARNING,
            company_id=company_id,
            entity_type="suggestion",
            entity_id=suggestion_id,
            correlation_id=correlation_id,
            description=f"Suggestion could not be posted ({len(issues)} issues)",
            details={"issues": issues},
            actor_id=actor_id,
        )

    @staticmethod
    def state_conflict(
        company_id: UUID,
        entity_type: str,
        entity_id: UUID,
        current_status: str,
        attempted: str,
        actor_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_CONFLICT,
            severity=AuditSeverity.WARNING,
            company_id=company_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Illegal transition: {attempted} while {current_status}",
            details={
                "current_status": current_status,
                "attempted": attempted,
            },
            actor_id=actor_id,
        )

    @staticmethod
    def analysis_completed(
        company_id: UUID,
        provider: str,
        model_used: str,
        confidence: float,
        processing_time_ms: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYSIS_COMPLETED,
            company_id=company_id,
            entity_type="analysis",
            correlation_id=correlation_id,
            description=f"Analysis by {provider}/{model_used} in {processing_time_ms}ms",
            details={
                "provider": provider,
                "model_used": model_used,
                "confidence_score": confidence,
                "processing_time_ms": processing_time_ms,
            },
        )

    @staticmethod
    def analysis_failed(
        company_id: UUID,
        provider: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ANALYSIS_FAILED,
            severity=AuditSeverity.ERROR,
            company_id=company_id,
            entity_type="analysis",
            correlation_id=correlation_id,
            description=f"Analysis failed: {provider}",
            error_message=error_message,
            details={"provider": provider},
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        company_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            company_id=company_id,
            correlation_id=correlation_id,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        company_id: Optional[UUID] = None,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            company_id=company_id,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
