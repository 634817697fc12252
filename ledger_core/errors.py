"""
Ledger Error Taxonomy

DESIGN DECISION: Every failure the core can report has its own type.
Callers (HTTP controllers, CLIs) map these to user-visible messages:
- LedgerValidationError: the entries were rejected, nothing was written
- NotFoundError: the id does not exist for this tenant
- StateConflictError: the requested transition is illegal right now
- IntegrityError: the store failed mid-commit and was rolled back

The core NEVER auto-corrects an unbalanced entry. It accepts or rejects.
"""

from typing import Optional, Sequence
from uuid import UUID

from ledger_core.models.ledger import ValidationIssue


class LedgerError(Exception):
    """Base exception for the ledger core."""
    pass


class LedgerValidationError(LedgerError):
    """Candidate entries failed validation. No write was performed."""

    def __init__(self, issues: Sequence[ValidationIssue], message: Optional[str] = None):
        self.issues = list(issues)
        if message is None:
            message = "; ".join(issue.message for issue in self.issues) or "Validation failed"
        super().__init__(message)


class NotFoundError(LedgerError):
    """Entity does not exist for the given tenant."""

    def __init__(self, entity: str, entity_id: object, company_id: Optional[UUID] = None):
        self.entity = entity
        self.entity_id = entity_id
        self.company_id = company_id
        super().__init__(f"{entity.capitalize()} not found: {entity_id}")


class StateConflictError(LedgerError):
    """
    Attempted transition violates the state machine.

    Carries the status the entity actually had, so the caller can show
    which transition was illegal and why.
    """

    def __init__(
        self,
        entity: str,
        entity_id: UUID,
        current_status: str,
        attempted: str,
    ):
        self.entity = entity
        self.entity_id = entity_id
        self.current_status = current_status
        self.attempted = attempted
        super().__init__(
            f"Cannot {attempted} {entity} {entity_id}: current status is '{current_status}'"
        )


class IntegrityError(LedgerError):
    """The store failed mid-commit. The partial write has been rolled back."""
    pass


class TransactionNumberConflictError(IntegrityError):
    """Another writer took the same per-tenant transaction number."""
    pass


class AnalysisError(LedgerError):
    """An AI provider could not produce a usable proposal."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"{provider}: {message}")
