"""
SQL Storage Implementation (SQLAlchemy 2.x)

Persists the ledger in any database SQLAlchemy can talk to.

Table layout (every row carries company_id):
- accounts
- transactions            (unique: company_id + transaction_number)
- transaction_entries
- ledger_sequences        (per-tenant transaction number counter)
- ai_agents
- ai_suggestions

DESIGN DECISION: A unit of work is one database transaction. The session
of the current unit lives in a ContextVar so that every store call made
inside `with store.atomic():` joins it; nested units become SAVEPOINTs.
Calls made outside a unit run in their own short transaction.

CRITICAL: Status transitions are conditional UPDATEs
(`... WHERE status = :expected`) checked by row count. That is what makes
void and the suggestion review steps safe when two requests race.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator, Optional, Sequence
from uuid import UUID

import structlog
from pydantic_core import to_jsonable_python
from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    create_engine,
    event,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError as SAIntegrityError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from ledger_core.errors import (
    IntegrityError,
    LedgerError,
    TransactionNumberConflictError,
)
from ledger_core.models.ledger import (
    Account,
    JournalLine,
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
from ledger_core.services.storage.interface import LedgerStoreInterface

logger = structlog.get_logger(__name__)

MONEY = Numeric(18, 2, asdecimal=True)


# =============================================================================
# TABLES
# =============================================================================

class Base(DeclarativeBase):
    pass


class AccountRow(Base):
    __tablename__ = "accounts"
    __table_args__ = (UniqueConstraint("company_id", "code", name="uq_accounts_company_code"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    company_id: Mapped[UUID] = mapped_column(Uuid, index=True)
    code: Mapped[str] = mapped_column(String(20))
    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    type: Mapped[str] = mapped_column(String(20))
    normal_balance: Mapped[str] = mapped_column(String(10))
    parent_account_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_system_account: Mapped[bool] = mapped_column(Boolean, default=False)
    opening_balance: Mapped[Decimal] = mapped_column(MONEY, default=Decimal("0.00"))
    created_at: Mapped[datetime] = mapped_column(DateTime)


class TransactionRow(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("company_id", "transaction_number", name="uq_transactions_company_number"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    company_id: Mapped[UUID] = mapped_column(Uuid, index=True)
    transaction_number: Mapped[int] = mapped_column(Integer)
    transaction_date: Mapped[date] = mapped_column(Date)
    posting_date: Mapped[date] = mapped_column(Date, index=True)
    type: Mapped[str] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(10), index=True)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    memo: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(MONEY)
    created_by: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    is_ai_generated: Mapped[bool] = mapped_column(Boolean, default=False)
    ai_metadata: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)
    voided_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    voided_by: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)


class TransactionEntryRow(Base):
    __tablename__ = "transaction_entries"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    transaction_id: Mapped[UUID] = mapped_column(ForeignKey("transactions.id"), index=True)
    company_id: Mapped[UUID] = mapped_column(Uuid, index=True)
    line_number: Mapped[int] = mapped_column(Integer)
    account_id: Mapped[UUID] = mapped_column(ForeignKey("accounts.id"), index=True)
    debit_amount: Mapped[Decimal] = mapped_column(MONEY)
    credit_amount: Mapped[Decimal] = mapped_column(MONEY)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    memo: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    entity_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    entity_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)


class LedgerSequenceRow(Base):
    __tablename__ = "ledger_sequences"

    company_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    last_number: Mapped[int] = mapped_column(Integer, default=0)


class AIAgentRow(Base):
    __tablename__ = "ai_agents"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    company_id: Mapped[UUID] = mapped_column(Uuid, index=True)
    name: Mapped[str] = mapped_column(String(100))
    type: Mapped[str] = mapped_column(String(20))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    confidence_threshold: Mapped[float] = mapped_column(Float)
    auto_approve: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    suggestions_made: Mapped[int] = mapped_column(Integer, default=0)
    suggestions_accepted: Mapped[int] = mapped_column(Integer, default=0)
    suggestions_rejected: Mapped[int] = mapped_column(Integer, default=0)
    accuracy_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    last_activity_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime)


class AISuggestionRow(Base):
    __tablename__ = "ai_suggestions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    company_id: Mapped[UUID] = mapped_column(Uuid, index=True)
    agent_id: Mapped[UUID] = mapped_column(ForeignKey("ai_agents.id"), index=True)
    status: Mapped[str] = mapped_column(String(20), index=True)
    title: Mapped[str] = mapped_column(String(500))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    suggested_entries: Mapped[list] = mapped_column(JSON, default=list)
    confidence_score: Mapped[float] = mapped_column(Float)
    original_data: Mapped[dict] = mapped_column(JSON, default=dict)
    # "metadata" is reserved on declarative classes
    metadata_json: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    reviewed_by: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    implemented_transaction_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    implemented_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime)
    updated_at: Mapped[datetime] = mapped_column(DateTime)


# =============================================================================
# ROW <-> MODEL
# =============================================================================

def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (dict, list)):
        return to_jsonable_python(value)
    return value


def _row_kwargs(model, exclude: frozenset = frozenset()) -> dict[str, Any]:
    return {
        name: _plain(getattr(model, name))
        for name in type(model).model_fields
        if name not in exclude
    }


def _columns(row) -> dict[str, Any]:
    return {column.key: getattr(row, column.key) for column in row.__mapper__.column_attrs}


def _to_account(row: AccountRow) -> Account:
    return Account.model_validate(_columns(row))


def _to_transaction(row: TransactionRow) -> Transaction:
    return Transaction.model_validate(_columns(row))


def _to_entry(row: TransactionEntryRow) -> TransactionEntry:
    return TransactionEntry.model_validate(_columns(row))


def _to_agent(row: AIAgentRow) -> AIAgent:
    return AIAgent.model_validate(_columns(row))


def _to_suggestion(row: AISuggestionRow) -> AISuggestion:
    data = _columns(row)
    data["metadata"] = data.pop("metadata_json") or {}
    data["suggested_entries"] = [JournalLine.model_validate(line) for line in data["suggested_entries"] or []]
    return AISuggestion.model_validate(data)


def _suggestion_row(suggestion: AISuggestion) -> AISuggestionRow:
    data = _row_kwargs(suggestion, exclude=frozenset({"metadata", "suggested_entries"}))
    return AISuggestionRow(
        **data,
        metadata_json=suggestion.metadata,
        suggested_entries=[line.model_dump(mode="json") for line in suggestion.suggested_entries],
    )


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let pysqlite emit BEGIN itself so SAVEPOINT works inside a unit."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


# =============================================================================
# STORE
# =============================================================================

class SQLLedgerStore(LedgerStoreInterface):
    """
    Ledger store backed by SQLAlchemy.

    Usage:
        store = SQLLedgerStore.from_url("sqlite:///ledger.db")
        store.create_schema()
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._sessionmaker = sessionmaker(bind=engine, expire_on_commit=False)
        self._current: ContextVar[Optional[Session]] = ContextVar(
            f"ledger_session_{id(self)}", default=None
        )

    @classmethod
    def from_url(cls, url: str, echo: bool = False) -> "SQLLedgerStore":
        kwargs: dict[str, Any] = {"echo": echo}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every session sees an empty database
            kwargs.update(connect_args={"check_same_thread": False}, poolclass=StaticPool)
        engine = create_engine(url, **kwargs)
        if engine.dialect.name == "sqlite":
            _enable_sqlite_savepoints(engine)
        return cls(engine)

    def create_schema(self) -> None:
        """Create all ledger tables that do not exist yet."""
        Base.metadata.create_all(self.engine)
        logger.info("ledger_schema_created", dialect=self.engine.dialect.name)

    # =========================================================================
    # UNIT OF WORK
    # =========================================================================

    @contextmanager
    def atomic(self) -> Iterator["SQLLedgerStore"]:
        session = self._current.get()
        if session is not None:
            try:
                with session.begin_nested():
                    yield self
            except SAIntegrityError as e:
                raise IntegrityError(f"Savepoint rolled back: {e.orig}") from e
            except SQLAlchemyError as e:
                raise IntegrityError(f"Savepoint rolled back: {e}") from e
            return

        session = self._sessionmaker()
        token = self._current.set(session)
        try:
            with session.begin():
                yield self
        except LedgerError:
            raise
        except SAIntegrityError as e:
            logger.warning("sql_unit_rolled_back", error=str(e.orig))
            raise IntegrityError(f"Unit of work rolled back: {e.orig}") from e
        except SQLAlchemyError as e:
            logger.error("sql_unit_rolled_back", error=str(e))
            raise IntegrityError(f"Unit of work rolled back: {e}") from e
        finally:
            self._current.reset(token)
            session.close()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._current.get()
        if session is not None:
            yield session
            return
        with self.atomic():
            yield self._current.get()

    # =========================================================================
    # ACCOUNTS
    # =========================================================================

    def add_account(self, account: Account) -> Account:
        with self._session() as session:
            session.add(AccountRow(**_row_kwargs(account)))
            try:
                session.flush()
            except SAIntegrityError as e:
                raise IntegrityError(
                    f"Account code {account.code} already exists for company {account.company_id}"
                ) from e
        return account

    def get_account(self, company_id: UUID, account_id: UUID) -> Optional[Account]:
        with self._session() as session:
            row = session.scalar(
                select(AccountRow).where(
                    AccountRow.id == account_id,
                    AccountRow.company_id == company_id,
                )
            )
            return _to_account(row) if row else None

    def get_account_by_code(self, company_id: UUID, code: str) -> Optional[Account]:
        with self._session() as session:
            row = session.scalar(
                select(AccountRow).where(
                    AccountRow.company_id == company_id,
                    AccountRow.code == code,
                )
            )
            return _to_account(row) if row else None

    def list_accounts(self, company_id: UUID, active_only: bool = False) -> list[Account]:
        stmt = select(AccountRow).where(AccountRow.company_id == company_id)
        if active_only:
            stmt = stmt.where(AccountRow.is_active.is_(True))
        with self._session() as session:
            return [_to_account(row) for row in session.scalars(stmt.order_by(AccountRow.code))]

    def set_account_active(
        self,
        company_id: UUID,
        account_id: UUID,
        is_active: bool,
    ) -> Optional[Account]:
        with self._session() as session:
            result = session.execute(
                update(AccountRow)
                .where(AccountRow.id == account_id, AccountRow.company_id == company_id)
                .values(is_active=is_active)
            )
            if result.rowcount != 1:
                return None
            session.expire_all()
            return self.get_account(company_id, account_id)

    def account_has_posted_entries(self, company_id: UUID, account_id: UUID) -> bool:
        stmt = (
            select(TransactionEntryRow.id)
            .join(TransactionRow, TransactionRow.id == TransactionEntryRow.transaction_id)
            .where(
                TransactionEntryRow.company_id == company_id,
                TransactionEntryRow.account_id == account_id,
                TransactionRow.status == TransactionStatus.POSTED.value,
            )
            .limit(1)
        )
        with self._session() as session:
            return session.scalar(stmt) is not None

    def lock_accounts(self, company_id: UUID, account_ids: Sequence[UUID]) -> None:
        ids = sorted(set(account_ids), key=str)
        if not ids:
            return
        # Sorted so two units locking overlapping sets cannot deadlock.
        # SQLite ignores FOR UPDATE; its single writer lock serializes units.
        with self._session() as session:
            session.execute(
                select(AccountRow.id)
                .where(AccountRow.company_id == company_id, AccountRow.id.in_(ids))
                .order_by(AccountRow.id)
                .with_for_update()
            ).all()
            session.expire_all()

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def next_transaction_number(self, company_id: UUID) -> int:
        with self._session() as session:
            sequence = session.scalar(
                select(LedgerSequenceRow)
                .where(LedgerSequenceRow.company_id == company_id)
                .with_for_update()
            )
            if sequence is None:
                sequence = LedgerSequenceRow(company_id=company_id, last_number=0)
                session.add(sequence)
            sequence.last_number += 1
            try:
                session.flush()
            except SAIntegrityError as e:
                # Two first postings of a tenant raced on the sequence row
                raise TransactionNumberConflictError(
                    f"Sequence for company {company_id} was created concurrently"
                ) from e
            return sequence.last_number

    def insert_transaction(self, transaction: Transaction) -> Transaction:
        with self._session() as session:
            session.add(TransactionRow(**_row_kwargs(transaction)))
            try:
                session.flush()
            except SAIntegrityError as e:
                raise TransactionNumberConflictError(
                    f"Transaction number {transaction.transaction_number} "
                    f"already used for company {transaction.company_id}"
                ) from e
        return transaction

    def insert_entries(self, entries: list[TransactionEntry]) -> list[TransactionEntry]:
        with self._session() as session:
            for entry in entries:
                header = session.scalar(
                    select(TransactionRow.id).where(
                        TransactionRow.id == entry.transaction_id,
                        TransactionRow.company_id == entry.company_id,
                    )
                )
                if header is None:
                    raise IntegrityError(
                        f"Entry references unknown transaction {entry.transaction_id}"
                    )
                session.add(TransactionEntryRow(**_row_kwargs(entry)))
            session.flush()
        return entries

    def get_transaction(self, company_id: UUID, transaction_id: UUID) -> Optional[Transaction]:
        with self._session() as session:
            row = session.scalar(
                select(TransactionRow).where(
                    TransactionRow.id == transaction_id,
                    TransactionRow.company_id == company_id,
                )
            )
            return _to_transaction(row) if row else None

    def get_entries(self, company_id: UUID, transaction_id: UUID) -> list[TransactionEntry]:
        stmt = (
            select(TransactionEntryRow)
            .where(
                TransactionEntryRow.transaction_id == transaction_id,
                TransactionEntryRow.company_id == company_id,
            )
            .order_by(TransactionEntryRow.line_number)
        )
        with self._session() as session:
            return [_to_entry(row) for row in session.scalars(stmt)]

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
        stmt = select(TransactionRow).where(TransactionRow.company_id == company_id)
        if status:
            stmt = stmt.where(TransactionRow.status == status.value)
        if type:
            stmt = stmt.where(TransactionRow.type == type.value)
        if date_from:
            stmt = stmt.where(TransactionRow.transaction_date >= date_from)
        if date_to:
            stmt = stmt.where(TransactionRow.transaction_date <= date_to)
        if account_id:
            stmt = stmt.where(
                TransactionRow.id.in_(
                    select(TransactionEntryRow.transaction_id).where(
                        TransactionEntryRow.company_id == company_id,
                        TransactionEntryRow.account_id == account_id,
                    )
                )
            )
        stmt = (
            stmt.order_by(
                TransactionRow.transaction_date.desc(),
                TransactionRow.transaction_number.desc(),
            )
            .limit(limit)
            .offset(offset)
        )
        with self._session() as session:
            return [_to_transaction(row) for row in session.scalars(stmt)]

    def update_transaction_if_status(
        self,
        company_id: UUID,
        transaction_id: UUID,
        expected_status: TransactionStatus,
        **changes: Any,
    ) -> Optional[Transaction]:
        values = {key: _plain(value) for key, value in changes.items()}
        values["updated_at"] = datetime.utcnow()
        with self._session() as session:
            result = session.execute(
                update(TransactionRow)
                .where(
                    TransactionRow.id == transaction_id,
                    TransactionRow.company_id == company_id,
                    TransactionRow.status == expected_status.value,
                )
                .values(**values)
            )
            if result.rowcount != 1:
                return None
            session.expire_all()
            return self.get_transaction(company_id, transaction_id)

    def list_posted_entries(
        self,
        company_id: UUID,
        account_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[tuple[Transaction, TransactionEntry]]:
        stmt = (
            select(TransactionRow, TransactionEntryRow)
            .join(TransactionEntryRow, TransactionEntryRow.transaction_id == TransactionRow.id)
            .where(
                TransactionRow.company_id == company_id,
                TransactionRow.status == TransactionStatus.POSTED.value,
            )
        )
        if account_id:
            stmt = stmt.where(TransactionEntryRow.account_id == account_id)
        if date_from:
            stmt = stmt.where(TransactionRow.posting_date >= date_from)
        if date_to:
            stmt = stmt.where(TransactionRow.posting_date <= date_to)

        with self._session() as session:
            headers: dict[UUID, Transaction] = {}
            rows = []
            for header_row, entry_row in session.execute(stmt):
                header = headers.get(header_row.id)
                if header is None:
                    header = headers[header_row.id] = _to_transaction(header_row)
                rows.append((header, _to_entry(entry_row)))
            return rows

    # =========================================================================
    # AI AGENTS
    # =========================================================================

    def add_agent(self, agent: AIAgent) -> AIAgent:
        with self._session() as session:
            session.add(AIAgentRow(**_row_kwargs(agent)))
            session.flush()
        return agent

    def get_agent(self, company_id: UUID, agent_id: UUID) -> Optional[AIAgent]:
        with self._session() as session:
            row = session.scalar(
                select(AIAgentRow).where(
                    AIAgentRow.id == agent_id,
                    AIAgentRow.company_id == company_id,
                )
            )
            return _to_agent(row) if row else None

    def list_agents(self, company_id: UUID, type: Optional[AgentType] = None) -> list[AIAgent]:
        stmt = select(AIAgentRow).where(AIAgentRow.company_id == company_id)
        if type:
            stmt = stmt.where(AIAgentRow.type == type.value)
        with self._session() as session:
            return [_to_agent(row) for row in session.scalars(stmt.order_by(AIAgentRow.created_at))]

    def increment_agent_counters(
        self,
        company_id: UUID,
        agent_id: UUID,
        made: int = 0,
        accepted: int = 0,
        rejected: int = 0,
    ) -> Optional[AIAgent]:
        with self._session() as session:
            result = session.execute(
                update(AIAgentRow)
                .where(AIAgentRow.id == agent_id, AIAgentRow.company_id == company_id)
                .values(
                    suggestions_made=AIAgentRow.suggestions_made + made,
                    suggestions_accepted=AIAgentRow.suggestions_accepted + accepted,
                    suggestions_rejected=AIAgentRow.suggestions_rejected + rejected,
                    last_activity_at=datetime.utcnow(),
                )
            )
            if result.rowcount != 1:
                return None
            session.expire_all()
            row = session.get(AIAgentRow, agent_id)
            row.accuracy_rate = compute_accuracy_rate(
                row.suggestions_accepted, row.suggestions_rejected
            )
            session.flush()
            return _to_agent(row)

    # =========================================================================
    # AI SUGGESTIONS
    # =========================================================================

    def add_suggestion(self, suggestion: AISuggestion) -> AISuggestion:
        with self._session() as session:
            session.add(_suggestion_row(suggestion))
            session.flush()
        return suggestion

    def get_suggestion(self, company_id: UUID, suggestion_id: UUID) -> Optional[AISuggestion]:
        with self._session() as session:
            row = session.scalar(
                select(AISuggestionRow).where(
                    AISuggestionRow.id == suggestion_id,
                    AISuggestionRow.company_id == company_id,
                )
            )
            return _to_suggestion(row) if row else None

    def list_suggestions(
        self,
        company_id: UUID,
        status: Optional[SuggestionStatus] = None,
        agent_id: Optional[UUID] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AISuggestion]:
        stmt = select(AISuggestionRow).where(AISuggestionRow.company_id == company_id)
        if status:
            stmt = stmt.where(AISuggestionRow.status == status.value)
        if agent_id:
            stmt = stmt.where(AISuggestionRow.agent_id == agent_id)
        stmt = stmt.order_by(AISuggestionRow.created_at.desc()).limit(limit).offset(offset)
        with self._session() as session:
            return [_to_suggestion(row) for row in session.scalars(stmt)]

    def update_suggestion_if_status(
        self,
        company_id: UUID,
        suggestion_id: UUID,
        expected_status: SuggestionStatus,
        **changes: Any,
    ) -> Optional[AISuggestion]:
        values = {key: _plain(value) for key, value in changes.items()}
        if "metadata" in values:
            values["metadata_json"] = values.pop("metadata")
        values["updated_at"] = datetime.utcnow()
        with self._session() as session:
            result = session.execute(
                update(AISuggestionRow)
                .where(
                    AISuggestionRow.id == suggestion_id,
                    AISuggestionRow.company_id == company_id,
                    AISuggestionRow.status == expected_status.value,
                )
                .values(**values)
            )
            if result.rowcount != 1:
                return None
            session.expire_all()
            return self.get_suggestion(company_id, suggestion_id)
