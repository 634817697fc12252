"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run the ledger on a real database (SQLAlchemy) or in memory (tests)
2. Inject one explicit store into every component instead of a global
3. Keep accounting rules decoupled from storage implementation

CRITICAL: Every method takes company_id. There is no way to read or write
a row without naming the tenant it belongs to.

The interface is intentionally narrow - it is not an ORM. It offers
exactly the reads the query components need and the writes the poster and
the workflow perform, plus two conditional updates that make status
transitions safe under concurrency.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date
from typing import Any, Optional, Sequence
from uuid import UUID

from ledger_core.models.ledger import (
    Account,
    Transaction,
    TransactionEntry,
    TransactionStatus,
    TransactionType,
)
from ledger_core.models.suggestion import (
    AgentType,
    AIAgent,
    AISuggestion,
    SuggestionStatus,
)
from ledger_core.models.audit import AuditEvent


class LedgerStoreInterface(ABC):
    """
    Abstract interface for ledger persistence.

    Any storage implementation (SQL database, in-memory, etc.)
    must implement these methods.
    """

    # =========================================================================
    # UNIT OF WORK
    # =========================================================================

    @abstractmethod
    def atomic(self) -> AbstractContextManager:
        """
        Open a unit of work.

        All writes inside the block commit together when it exits normally
        and are rolled back when it raises. Units may be nested; an inner
        unit that raises rolls back only its own writes.

        Raises:
            IntegrityError: If the commit itself fails (after rollback)
        """
        pass

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    @abstractmethod
    def add_account(self, account: Account) -> Account:
        """
        Insert a new account.

        Raises:
            IntegrityError: If the code is already used by this tenant
        """
        pass

    @abstractmethod
    def get_account(self, company_id: UUID, account_id: UUID) -> Optional[Account]:
        """Return the account if it exists for this tenant, None otherwise."""
        pass

    @abstractmethod
    def get_account_by_code(self, company_id: UUID, code: str) -> Optional[Account]:
        """Return the tenant's account with this code, None otherwise."""
        pass

    @abstractmethod
    def list_accounts(
        self,
        company_id: UUID,
        active_only: bool = False,
    ) -> list[Account]:
        """List the tenant's accounts ordered by code."""
        pass

    @abstractmethod
    def set_account_active(
        self,
        company_id: UUID,
        account_id: UUID,
        is_active: bool,
    ) -> Optional[Account]:
        """Flip is_active. Returns the updated account, None if missing."""
        pass

    @abstractmethod
    def account_has_posted_entries(self, company_id: UUID, account_id: UUID) -> bool:
        """True if any entry of a posted transaction uses this account."""
        pass

    @abstractmethod
    def lock_accounts(self, company_id: UUID, account_ids: Sequence[UUID]) -> None:
        """
        Hold the given accounts until the current unit of work ends.

        Must be called inside atomic(). Posting and deactivation both lock
        the accounts they touch, so an account cannot become inactive
        between the check that it is active and the insert of its entries.
        """
        pass

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    @abstractmethod
    def next_transaction_number(self, company_id: UUID) -> int:
        """
        Reserve the next per-tenant transaction number (starting at 1).

        Must be called inside atomic() so that a rolled back posting
        does not leave a gap.
        """
        pass

    @abstractmethod
    def insert_transaction(self, transaction: Transaction) -> Transaction:
        """
        Insert a transaction header.

        Raises:
            TransactionNumberConflictError: If the number is already taken
        """
        pass

    @abstractmethod
    def insert_entries(self, entries: list[TransactionEntry]) -> list[TransactionEntry]:
        """
        Insert the entries of an already inserted header.

        Raises:
            IntegrityError: If the header does not exist
        """
        pass

    @abstractmethod
    def get_transaction(
        self,
        company_id: UUID,
        transaction_id: UUID,
    ) -> Optional[Transaction]:
        """Return the header regardless of status, None if missing."""
        pass

    @abstractmethod
    def get_entries(
        self,
        company_id: UUID,
        transaction_id: UUID,
    ) -> list[TransactionEntry]:
        """Return the transaction's entries ordered by line_number."""
        pass

    @abstractmethod
    def list_transactions(
        self,
        company_id: UUID,
        status: Optional[TransactionStatus] = None,
        type: Optional[TransactionType] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        account_id: Optional[UUID] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Transaction]:
        """
        List headers with optional filters.

        Args:
            status: Filter by status
            type: Filter by transaction type
            date_from: transaction_date on or after this date
            date_to: transaction_date on or before this date
            account_id: Only transactions with an entry on this account
            limit: Maximum number of results
            offset: Number of results to skip

        Returns:
            Headers ordered by transaction_date desc, transaction_number desc
        """
        pass

    @abstractmethod
    def update_transaction_if_status(
        self,
        company_id: UUID,
        transaction_id: UUID,
        expected_status: TransactionStatus,
        **changes: Any,
    ) -> Optional[Transaction]:
        """
        Compare-and-set on the header status.

        Applies `changes` only if the stored status still equals
        expected_status. Returns the updated header, or None when the
        row is missing or its status moved on.
        """
        pass

    @abstractmethod
    def list_posted_entries(
        self,
        company_id: UUID,
        account_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[tuple[Transaction, TransactionEntry]]:
        """
        Entries of POSTED transactions joined with their headers.

        Dates filter on posting_date, both bounds inclusive. No ordering
        is guaranteed; readers sort for display.
        """
        pass

    # =========================================================================
    # AI AGENTS
    # =========================================================================

    @abstractmethod
    def add_agent(self, agent: AIAgent) -> AIAgent:
        pass

    @abstractmethod
    def get_agent(self, company_id: UUID, agent_id: UUID) -> Optional[AIAgent]:
        pass

    @abstractmethod
    def list_agents(
        self,
        company_id: UUID,
        type: Optional[AgentType] = None,
    ) -> list[AIAgent]:
        """List agents ordered by creation time."""
        pass

    @abstractmethod
    def increment_agent_counters(
        self,
        company_id: UUID,
        agent_id: UUID,
        made: int = 0,
        accepted: int = 0,
        rejected: int = 0,
    ) -> Optional[AIAgent]:
        """
        Add to the agent's counters and recompute accuracy_rate.

        Returns the updated agent, None if missing.
        """
        pass

    # =========================================================================
    # AI SUGGESTIONS
    # =========================================================================

    @abstractmethod
    def add_suggestion(self, suggestion: AISuggestion) -> AISuggestion:
        pass

    @abstractmethod
    def get_suggestion(
        self,
        company_id: UUID,
        suggestion_id: UUID,
    ) -> Optional[AISuggestion]:
        pass

    @abstractmethod
    def list_suggestions(
        self,
        company_id: UUID,
        status: Optional[SuggestionStatus] = None,
        agent_id: Optional[UUID] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AISuggestion]:
        """List suggestions newest first."""
        pass

    @abstractmethod
    def update_suggestion_if_status(
        self,
        company_id: UUID,
        suggestion_id: UUID,
        expected_status: SuggestionStatus,
        **changes: Any,
    ) -> Optional[AISuggestion]:
        """
        Optimistic status check for review transitions.

        Applies `changes` only if the stored status still equals
        expected_status. Returns the updated suggestion, or None when the
        row is missing or another reviewer got there first.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one analyze → implement flow).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'transaction', 'suggestion')
            entity_id: The entity's ID

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for audit sink operations."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to the storage backend."""
    pass
