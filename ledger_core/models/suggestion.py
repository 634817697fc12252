"""
AI Suggestion Models

CRITICAL: A suggestion is PROPOSED data, NOT ledger data.
It only reaches the ledger through the review state machine:

    pending → approved → implemented
    pending → rejected

and even then its entries go through exactly the same validation
as a manual posting.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from ledger_core.models.ledger import JournalLine, ValidationIssue


class SuggestionStatus(str, Enum):
    """Review status of an AI suggestion."""
    PENDING = "pending"          # Awaiting review
    APPROVED = "approved"        # Reviewer accepted, not yet posted
    REJECTED = "rejected"        # Terminal
    IMPLEMENTED = "implemented"  # Terminal, posted exactly once


class AgentType(str, Enum):
    """Kinds of AI agents a tenant can run."""
    ACCOUNTING = "accounting"
    TAX = "tax"
    ANALYSIS = "analysis"


def compute_accuracy_rate(accepted: int, rejected: int) -> Optional[float]:
    """Percentage of reviewed suggestions that were accepted."""
    reviewed = accepted + rejected
    if reviewed == 0:
        return None
    return round(accepted / reviewed * 100, 2)


class AIAgent(BaseModel):
    """
    Policy entity that produces suggestions for one tenant.

    confidence_threshold and auto_approve are read by the analysis flow
    when deciding whether to approve a fresh suggestion immediately.
    """
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    company_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    type: AgentType = AgentType.ACCOUNTING
    description: Optional[str] = None
    confidence_threshold: float = Field(default=0.80, ge=0.0, le=1.0)
    auto_approve: bool = False
    is_active: bool = True
    suggestions_made: int = Field(default=0, ge=0)
    suggestions_accepted: int = Field(default=0, ge=0)
    suggestions_rejected: int = Field(default=0, ge=0)
    accuracy_rate: Optional[float] = Field(
        default=None,
        description="accepted / (accepted + rejected) * 100, None until reviewed"
    )
    last_activity_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class AISuggestion(BaseModel):
    """A proposed, unposted journal entry awaiting review."""
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    company_id: UUID
    agent_id: UUID
    status: SuggestionStatus = SuggestionStatus.PENDING
    title: str = Field(default="AI suggested journal entry", max_length=500)
    description: Optional[str] = None
    reasoning: Optional[str] = None
    suggested_entries: list[JournalLine] = Field(default_factory=list)
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    original_data: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    implemented_transaction_id: Optional[UUID] = None
    implemented_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in (SuggestionStatus.REJECTED, SuggestionStatus.IMPLEMENTED)


class AnalysisRequest(BaseModel):
    """A business event handed to an AI provider for analysis."""
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = Field(..., min_length=1, max_length=1000)
    amount: Decimal = Field(..., gt=0)
    transaction_date: date = Field(default_factory=date.today)
    reference: Optional[str] = None
    attachment_data: Optional[str] = Field(
        default=None,
        description="OCR text from a receipt or invoice, if any"
    )
    context: dict[str, Any] = Field(default_factory=dict)


class ProviderProposal(BaseModel):
    """
    What a provider returns from analyze().

    Untrusted: suggested_entries are validated by the poster before
    anything is written.
    """

    title: str = "AI suggested journal entry"
    description: Optional[str] = None
    reasoning: str = ""
    confidence_score: float = Field(..., ge=0.0, le=1.0)
    suggested_entries: list[JournalLine] = Field(default_factory=list)
    rules_applied: list[str] = Field(default_factory=list)
    provider: str
    model_used: str
    processing_time_ms: int = Field(default=0, ge=0)


class AnalysisOutcome(BaseModel):
    """
    What the analysis flow did with one business event.

    auto_approved is True when the agent policy let the suggestion skip
    review. implement_errors holds the poster's issues when the
    auto-approved suggestion could not be posted (it then stays approved).
    """

    suggestion: AISuggestion
    proposal: ProviderProposal
    auto_approved: bool = False
    transaction_id: Optional[UUID] = None
    implement_errors: list[ValidationIssue] = Field(default_factory=list)


class AgentPerformance(BaseModel):
    """Review statistics of one agent."""

    agent: AIAgent
    total_suggestions: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    implemented: int = 0
    average_confidence: float = 0.0
    accuracy_rate: Optional[float] = None
