"""
In-Memory Storage Implementation

Used by the test suite and by single-process tools.

DESIGN DECISION: Rows are frozen pydantic models kept in plain dicts.
Writers are serialized by a re-entrant lock; atomic() snapshots the
dicts on entry and restores them if the block raises, which gives the
same all-or-nothing behavior as a database transaction.
"""

import threading
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Iterator, Optional, Sequence
from uuid import UUID

import structlog

from ledger_core.errors import IntegrityError, TransactionNumberConflictError
from ledger_core.models.audit import AuditEvent
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
    compute_accuracy_rate,
)
from ledger_core.services.storage.interface import (
    AuditStorageInterface,
    LedgerStoreInterface,
)

logger = structlog.get_logger(__name__)


_TABLES = (
    "_accounts",
    "_transactions",
    "_entries",
    "_sequences",
    "_agents",
    "_suggestions",
)


class InMemoryLedgerStore(LedgerStoreInterface):
    """Thread-safe dict-backed ledger store."""

    def __init__(self):
        self._lock = threading.RLock()
        self._accounts: dict[UUID, Account] = {}
        self._transactions: dict[UUID, Transaction] = {}
        self._entries: dict[UUID, list[TransactionEntry]] = {}
        self._sequences: dict[UUID, int] = {}
        self._agents: dict[UUID, AIAgent] = {}
        self._suggestions: dict[UUID, AISuggestion] = {}

    # =========================================================================
    # UNIT OF WORK
    # =========================================================================

    def _snapshot(self) -> dict[str, dict]:
        return {name: dict(getattr(self, name)) for name in _TABLES}

    def _restore(self, snapshot: dict[str, dict]) -> None:
        for name, table in snapshot.items():
            setattr(self, name, table)

    @contextmanager
    def atomic(self) -> Iterator["InMemoryLedgerStore"]:
        with self._lock:
            snapshot = self._snapshot()
            try:
                yield self
            except BaseException:
                self._restore(snapshot)
                logger.debug("memory_store_rollback")
                raise

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def add_account(self, account: Account) -> Account:
        with self._lock:
            if self.get_account_by_code(account.company_id, account.code):
                raise IntegrityError(
                    f"Account code {account.code} already exists for company {account.company_id}"
                )
            self._accounts[account.id] = account
            return account

    def get_account(self, company_id: UUID, account_id: UUID) -> Optional[Account]:
        with self._lock:
            account = self._accounts.get(account_id)
        if account is None or account.company_id != company_id:
            return None
        return account

    def get_account_by_code(self, company_id: UUID, code: str) -> Optional[Account]:
        with self._lock:
            for account in self._accounts.values():
                if account.company_id == company_id and account.code == code:
                    return account
        return None

    def list_accounts(self, company_id: UUID, active_only: bool = False) -> list[Account]:
        with self._lock:
            accounts = [
                a for a in self._accounts.values()
                if a.company_id == company_id and (a.is_active or not active_only)
            ]
        return sorted(accounts, key=lambda a: a.code)

    def set_account_active(
        self,
        company_id: UUID,
        account_id: UUID,
        is_active: bool,
    ) -> Optional[Account]:
        with self._lock:
            account = self.get_account(company_id, account_id)
            if account is None:
                return None
            updated = account.model_copy(update={"is_active": is_active})
            self._accounts[account_id] = updated
            return updated

    def account_has_posted_entries(self, company_id: UUID, account_id: UUID) -> bool:
        return bool(self.list_posted_entries(company_id, account_id=account_id))

    def lock_accounts(self, company_id: UUID, account_ids: Sequence[UUID]) -> None:
        # atomic() already holds the store lock for the whole unit
        return None

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def next_transaction_number(self, company_id: UUID) -> int:
        with self._lock:
            number = self._sequences.get(company_id, 0) + 1
            self._sequences[company_id] = number
            return number

    def insert_transaction(self, transaction: Transaction) -> Transaction:
        with self._lock:
            for existing in self._transactions.values():
                if (
                    existing.company_id == transaction.company_id
                    and existing.transaction_number == transaction.transaction_number
                ):
                    raise TransactionNumberConflictError(
                        f"Transaction number {transaction.transaction_number} "
                        f"already used for company {transaction.company_id}"
                    )
            self._transactions[transaction.id] = transaction
            self._entries[transaction.id] = []
            return transaction

    def insert_entries(self, entries: list[TransactionEntry]) -> list[TransactionEntry]:
        with self._lock:
            for entry in entries:
                header = self._transactions.get(entry.transaction_id)
                if header is None or header.company_id != entry.company_id:
                    raise IntegrityError(
                        f"Entry references unknown transaction {entry.transaction_id}"
                    )
                # Replace the list instead of appending so snapshots stay intact
                self._entries[entry.transaction_id] = [
                    *self._entries[entry.transaction_id],
                    entry,
                ]
            return entries

    def get_transaction(self, company_id: UUID, transaction_id: UUID) -> Optional[Transaction]:
        with self._lock:
            transaction = self._transactions.get(transaction_id)
        if transaction is None or transaction.company_id != company_id:
            return None
        return transaction

    def get_entries(self, company_id: UUID, transaction_id: UUID) -> list[TransactionEntry]:
        # A unit holds the lock until commit, so entries are never seen half written
        with self._lock:
            if self.get_transaction(company_id, transaction_id) is None:
                return []
            entries = self._entries.get(transaction_id, [])
        return sorted(entries, key=lambda e: e.line_number)

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
        with self._lock:
            candidates = [t for t in self._transactions.values() if t.company_id == company_id]
            entries = dict(self._entries)

        results = []
        for t in candidates:
            if status and t.status != status:
                continue
            if type and t.type != type:
                continue
            if date_from and t.transaction_date < date_from:
                continue
            if date_to and t.transaction_date > date_to:
                continue
            if account_id and not any(e.account_id == account_id for e in entries.get(t.id, [])):
                continue
            results.append(t)

        results.sort(key=lambda t: (t.transaction_date, t.transaction_number), reverse=True)
        return results[offset:offset + limit]

    def update_transaction_if_status(
        self,
        company_id: UUID,
        transaction_id: UUID,
        expected_status: TransactionStatus,
        **changes: Any,
    ) -> Optional[Transaction]:
        with self._lock:
            current = self.get_transaction(company_id, transaction_id)
            if current is None or current.status != expected_status:
                return None
            updated = current.model_copy(update={**changes, "updated_at": datetime.utcnow()})
            self._transactions[transaction_id] = updated
            return updated

    def list_posted_entries(
        self,
        company_id: UUID,
        account_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[tuple[Transaction, TransactionEntry]]:
        with self._lock:
            headers = [
                t for t in self._transactions.values()
                if t.company_id == company_id and t.status == TransactionStatus.POSTED
            ]
            entries = dict(self._entries)

        rows = []
        for header in headers:
            if date_from and header.posting_date < date_from:
                continue
            if date_to and header.posting_date > date_to:
                continue
            for entry in entries.get(header.id, []):
                if account_id is None or entry.account_id == account_id:
                    rows.append((header, entry))
        return rows

    # =========================================================================
    # AI AGENTS
    # =========================================================================

    def add_agent(self, agent: AIAgent) -> AIAgent:
        with self._lock:
            self._agents[agent.id] = agent
            return agent

    def get_agent(self, company_id: UUID, agent_id: UUID) -> Optional[AIAgent]:
        with self._lock:
            agent = self._agents.get(agent_id)
        if agent is None or agent.company_id != company_id:
            return None
        return agent

    def list_agents(self, company_id: UUID, type: Optional[AgentType] = None) -> list[AIAgent]:
        with self._lock:
            agents = [
                a for a in self._agents.values()
                if a.company_id == company_id and (type is None or a.type == type)
            ]
        return sorted(agents, key=lambda a: a.created_at)

    def increment_agent_counters(
        self,
        company_id: UUID,
        agent_id: UUID,
        made: int = 0,
        accepted: int = 0,
        rejected: int = 0,
    ) -> Optional[AIAgent]:
        with self._lock:
            agent = self.get_agent(company_id, agent_id)
            if agent is None:
                return None
            total_accepted = agent.suggestions_accepted + accepted
            total_rejected = agent.suggestions_rejected + rejected
            updated = agent.model_copy(update={
                "suggestions_made": agent.suggestions_made + made,
                "suggestions_accepted": total_accepted,
                "suggestions_rejected": total_rejected,
                "accuracy_rate": compute_accuracy_rate(total_accepted, total_rejected),
                "last_activity_at": datetime.utcnow(),
            })
            self._agents[agent_id] = updated
            return updated

    # =========================================================================
    # AI SUGGESTIONS
    # =========================================================================

    def add_suggestion(self, suggestion: AISuggestion) -> AISuggestion:
        with self._lock:
            self._suggestions[suggestion.id] = suggestion
            return suggestion

    def get_suggestion(self, company_id: UUID, suggestion_id: UUID) -> Optional[AISuggestion]:
        with self._lock:
            suggestion = self._suggestions.get(suggestion_id)
        if suggestion is None or suggestion.company_id != company_id:
            return None
        return suggestion

    def list_suggestions(
        self,
        company_id: UUID,
        status: Optional[SuggestionStatus] = None,
        agent_id: Optional[UUID] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AISuggestion]:
        with self._lock:
            suggestions = [
                s for s in self._suggestions.values()
                if s.company_id == company_id
                and (status is None or s.status == status)
                and (agent_id is None or s.agent_id == agent_id)
            ]
        suggestions.sort(key=lambda s: s.created_at, reverse=True)
        return suggestions[offset:offset + limit]

    def update_suggestion_if_status(
        self,
        company_id: UUID,
        suggestion_id: UUID,
        expected_status: SuggestionStatus,
        **changes: Any,
    ) -> Optional[AISuggestion]:
        with self._lock:
            current = self.get_suggestion(company_id, suggestion_id)
            if current is None or current.status != expected_status:
                return None
            updated = current.model_copy(update={**changes, "updated_at": datetime.utcnow()})
            self._suggestions[suggestion_id] = updated
            return updated


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: list[AuditEvent] = []

    def append_event(self, event: AuditEvent) -> bool:
        with self._lock:
            self._events.append(event)
        return True

    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        with self._lock:
            events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        with self._lock:
            events = [
                e for e in self._events
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        return sorted(events, key=lambda e: e.timestamp)

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        with self._lock:
            events = list(self._events)
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
