"""
Transaction Poster

The ONLY way entries get into the ledger.

CRITICAL: A transaction is either written completely (header and every
entry, under the next per-tenant number) or not at all. An entry set that
fails validation is reported back with every issue found and nothing is
written. Amounts are never adjusted to make an entry balance.

After posting, the only change a transaction can undergo is a void:
POSTED (or DRAFT) → VOID, guarded by a compare-and-set on the status.
Voided rows stay readable for the audit trail and drop out of every
balance and ledger query.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

import structlog
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_random

from ledger_core.audit import AuditLogger
from ledger_core.config import LedgerSettings, get_settings
from ledger_core.errors import NotFoundError, StateConflictError, TransactionNumberConflictError
from ledger_core.models.ledger import (
    PostedTransaction,
    PostingResult,
    Transaction,
    TransactionEntry,
    TransactionRequest,
    TransactionStatus,
    TransactionType,
    to_money,
)
from ledger_core.services.storage import LedgerStoreInterface
from ledger_core.validation import JournalValidator

logger = structlog.get_logger(__name__)


class TransactionPoster:
    """
    Validates and commits journal entries, and voids transactions.

    Usage:
        poster = TransactionPoster(store)
        result = poster.create_transaction(request)
        if not result.success:
            show(result.errors)
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        validator: Optional[JournalValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._validator = validator or JournalValidator(store, tolerance=self._settings.balance_tolerance)
        self._audit = audit_logger or AuditLogger()

    # =========================================================================
    # POSTING
    # =========================================================================

    def create_transaction(
        self,
        request: TransactionRequest,
        correlation_id: Optional[UUID] = None,
    ) -> PostingResult:
        """
        Validate and post a transaction as POSTED.

        Returns:
            PostingResult with the committed transaction and entries, or
            with every validation error when the entries were rejected
        """
        result = self.post_unaudited(request)

        if result.success:
            self._audit.log_transaction_posted(
                company_id=request.company_id,
                transaction_id=result.transaction.id,
                transaction_number=result.transaction.transaction_number,
                total_amount=str(result.transaction.total_amount),
                actor_id=request.created_by,
                correlation_id=correlation_id,
            )
        else:
            self._audit.log_transaction_rejected(
                company_id=request.company_id,
                issues=result.errors,
                difference=str(result.difference),
                actor_id=request.created_by,
                correlation_id=correlation_id,
            )
        return result

    def post_unaudited(self, request: TransactionRequest) -> PostingResult:
        """
        Validate and post without writing audit events.

        For callers that own a larger unit of work (the suggestion
        workflow) and audit the outcome themselves once it commits.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self._settings.max_posting_retries),
            wait=wait_random(min=0, max=0.05),
            retry=retry_if_exception_type(TransactionNumberConflictError),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                result = self._validate_and_commit(request)

        if not result.success:
            logger.info(
                "posting_rejected",
                company_id=str(request.company_id),
                issues=[issue.issue_type for issue in result.errors],
            )
            return result

        logger.info(
            "transaction_posted",
            company_id=str(request.company_id),
            transaction_number=result.transaction.transaction_number,
            entries=len(result.entries),
        )
        return result

    def _validate_and_commit(self, request: TransactionRequest) -> PostingResult:
        """
        Check and write header and entries as one unit under a fresh number.

        The accounts are locked before they are checked, so none of them
        can be deactivated between the check and the insert.
        """
        with self._store.atomic():
            self._store.lock_accounts(
                request.company_id,
                [line.account_id for line in request.entries if line.account_id is not None],
            )
            validation = self._validator.validate(request)
            if not validation.is_valid:
                return PostingResult(
                    success=False,
                    errors=validation.errors,
                    debit_total=validation.debit_total,
                    credit_total=validation.credit_total,
                )

            posted = self._write(request)

        return PostingResult(
            success=True,
            transaction=posted.transaction,
            entries=posted.entries,
            debit_total=posted.debit_total,
            credit_total=posted.credit_total,
        )

    def _write(self, request: TransactionRequest) -> PostedTransaction:
        debit_total, _ = JournalValidator.totals(request.entries)
        now = datetime.utcnow()

        number = self._store.next_transaction_number(request.company_id)
        transaction = Transaction(
            company_id=request.company_id,
            transaction_number=number,
            transaction_date=request.transaction_date,
            posting_date=request.effective_posting_date,
            type=request.type,
            status=TransactionStatus.POSTED,
            description=request.description,
            reference=request.reference,
            memo=request.memo,
            total_amount=to_money(debit_total),
            created_by=request.created_by,
            is_ai_generated=request.is_ai_generated,
            ai_metadata=request.ai_metadata,
            created_at=now,
            updated_at=now,
        )
        entries = [
            TransactionEntry(
                transaction_id=transaction.id,
                company_id=request.company_id,
                line_number=line_number,
                account_id=line.account_id,
                debit_amount=to_money(line.debit_amount),
                credit_amount=to_money(line.credit_amount),
                description=line.description,
                memo=line.memo,
                entity_id=line.entity_id,
                entity_type=line.entity_type,
            )
            for line_number, line in enumerate(request.entries, start=1)
        ]
        self._store.insert_transaction(transaction)
        self._store.insert_entries(entries)
        return PostedTransaction(transaction=transaction, entries=entries)

    # =========================================================================
    # VOID
    # =========================================================================

    def void(
        self,
        company_id: UUID,
        transaction_id: UUID,
        voided_by: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Void a transaction. Not undoable.

        Raises:
            NotFoundError: If the transaction does not exist for this tenant
            StateConflictError: If it is already void, including when a
                concurrent void won the race
        """
        current = self._store.get_transaction(company_id, transaction_id)
        if current is None:
            raise NotFoundError("transaction", transaction_id, company_id)

        updated = None
        if current.status != TransactionStatus.VOID:
            updated = self._store.update_transaction_if_status(
                company_id,
                transaction_id,
                current.status,
                status=TransactionStatus.VOID,
                voided_at=datetime.utcnow(),
                voided_by=voided_by,
            )

        if updated is None:
            latest = self._store.get_transaction(company_id, transaction_id) or current
            self._audit.log_state_conflict(
                company_id=company_id,
                entity_type="transaction",
                entity_id=transaction_id,
                current_status=latest.status.value,
                attempted="void",
                actor_id=voided_by,
                correlation_id=correlation_id,
            )
            raise StateConflictError("transaction", transaction_id, latest.status.value, "void")

        self._audit.log_transaction_voided(
            company_id=company_id,
            transaction_id=transaction_id,
            previous_status=current.status.value,
            actor_id=voided_by,
            correlation_id=correlation_id,
        )
        return updated

    # =========================================================================
    # READS
    # =========================================================================

    def get_transaction(self, company_id: UUID, transaction_id: UUID) -> PostedTransaction:
        """
        Header and entries, whatever the status.

        Raises:
            NotFoundError: If the transaction does not exist for this tenant
        """
        transaction = self._store.get_transaction(company_id, transaction_id)
        if transaction is None:
            raise NotFoundError("transaction", transaction_id, company_id)
        return PostedTransaction(
            transaction=transaction,
            entries=self._store.get_entries(company_id, transaction_id),
        )

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
        """Headers newest first (transaction_date, then number)."""
        return self._store.list_transactions(
            company_id,
            status=status,
            type=type,
            date_from=date_from,
            date_to=date_to,
            account_id=account_id,
            limit=limit,
            offset=offset,
        )
