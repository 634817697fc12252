"""Tests for posting and voiding transactions."""

import threading
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import line, seed_chart
from ledger_core.errors import IntegrityError, LedgerValidationError, NotFoundError, StateConflictError
from ledger_core.ledger import TransactionPoster
from ledger_core.models import AuditEventType, TransactionStatus
from ledger_core.validation import JournalValidator


def expense(accounts, amount="100.00"):
    return [
        line(accounts["6000"], debit=amount, description="Office supplies"),
        line(accounts["1001"], credit=amount),
    ]


class TestCreateTransaction:
    """Tests for TransactionPoster.create_transaction."""

    def test_posts_balanced_entry(self, poster, make_request, accounts):
        """Test a successful posting."""
        result = poster.create_transaction(make_request(expense(accounts), reference="R-1"))

        assert result.success
        assert result.errors == []
        assert result.transaction.status == TransactionStatus.POSTED
        assert result.transaction.transaction_number == 1
        assert result.transaction.total_amount == Decimal("100.00")
        assert result.transaction.reference == "R-1"
        assert [e.line_number for e in result.entries] == [1, 2]
        assert result.entries[0].description == "Office supplies"

    def test_numbers_are_sequential_per_tenant(
        self, poster, store, make_request, accounts, other_company_id
    ):
        """Test that each tenant has its own gap-free sequence."""
        numbers = [
            poster.create_transaction(make_request(expense(accounts))).transaction.transaction_number
            for _ in range(3)
        ]
        assert numbers == [1, 2, 3]

        other_accounts = seed_chart(store, other_company_id)
        other = poster.create_transaction(
            make_request(expense(other_accounts), company_id=other_company_id)
        )
        assert other.transaction.transaction_number == 1

    def test_unbalanced_entry_writes_nothing(
        self, poster, store, make_request, accounts, company_id, audit_storage
    ):
        """Test that a rejected posting leaves no trace in the ledger."""
        result = poster.create_transaction(make_request([
            line(accounts["6000"], debit="100.00"),
            line(accounts["1001"], credit="99.00"),
        ]))

        assert not result.success
        assert result.transaction is None
        assert result.difference == Decimal("1.00")
        assert store.list_transactions(company_id) == []

        events = audit_storage.get_recent_events()
        assert events[0].event_type == AuditEventType.TRANSACTION_REJECTED

    def test_rejection_does_not_consume_a_number(self, poster, make_request, accounts):
        """Test that only committed postings take a number."""
        poster.create_transaction(make_request([line(accounts["6000"], debit="1.00")]))
        result = poster.create_transaction(make_request(expense(accounts)))
        assert result.transaction.transaction_number == 1

    def test_failure_mid_commit_rolls_back(
        self, poster, store, make_request, accounts, company_id, monkeypatch
    ):
        """Test that a failing entry insert leaves no orphan header."""

        def broken_insert(entries):
            raise IntegrityError("disk full")

        monkeypatch.setattr(store, "insert_entries", broken_insert)
        with pytest.raises(IntegrityError):
            poster.create_transaction(make_request(expense(accounts)))

        assert store.list_transactions(company_id) == []
        monkeypatch.undo()

        result = poster.create_transaction(make_request(expense(accounts)))
        assert result.transaction.transaction_number == 1

    def test_number_collision_is_retried(self, poster, store, make_request, accounts, monkeypatch):
        """Test that a lost race on the transaction number is retried."""
        poster.create_transaction(make_request(expense(accounts)))

        issued = iter([1, 2])
        monkeypatch.setattr(store, "next_transaction_number", lambda company_id: next(issued))

        result = poster.create_transaction(make_request(expense(accounts)))
        assert result.success
        assert result.transaction.transaction_number == 2

    def test_concurrent_postings_get_distinct_numbers(
        self, poster, store, make_request, accounts, company_id
    ):
        """Test that parallel posters never share a number."""
        errors = []

        def post():
            try:
                poster.create_transaction(make_request(expense(accounts, "1.00")))
            except Exception as e:  # pragma: no cover
                errors.append(e)

        threads = [threading.Thread(target=post) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        numbers = sorted(t.transaction_number for t in store.list_transactions(company_id))
        assert numbers == list(range(1, 21))

    def test_posted_event_carries_correlation_id(
        self, poster, make_request, accounts, audit_storage
    ):
        """Test that the audit trail can be followed by correlation id."""
        correlation_id = uuid4()
        result = poster.create_transaction(make_request(expense(accounts)), correlation_id)

        events = audit_storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [AuditEventType.TRANSACTION_POSTED]
        assert events[0].entity_id == result.transaction.id


class TestVoidTransaction:
    """Tests for TransactionPoster.void."""

    def test_void_posted_transaction(self, poster, make_request, accounts, company_id):
        """Test voiding a posted transaction."""
        posted = poster.create_transaction(make_request(expense(accounts))).transaction
        user_id = uuid4()

        voided = poster.void(company_id, posted.id, voided_by=user_id)

        assert voided.status == TransactionStatus.VOID
        assert voided.voided_by == user_id
        assert voided.voided_at is not None
        # The row stays readable
        assert poster.get_transaction(company_id, posted.id).transaction.status == TransactionStatus.VOID

    def test_void_twice_conflicts(self, poster, make_request, accounts, company_id, audit_storage):
        """Test that void is not repeatable."""
        posted = poster.create_transaction(make_request(expense(accounts))).transaction
        poster.void(company_id, posted.id)

        with pytest.raises(StateConflictError) as exc_info:
            poster.void(company_id, posted.id)

        assert exc_info.value.current_status == "void"
        event_types = [e.event_type for e in audit_storage.get_events_by_entity("transaction", posted.id)]
        assert event_types.count(AuditEventType.TRANSACTION_VOIDED) == 1
        assert AuditEventType.STATE_CONFLICT in event_types

    def test_void_unknown_transaction(self, poster, company_id):
        """Test voiding an id that does not exist."""
        with pytest.raises(NotFoundError):
            poster.void(company_id, uuid4())

    def test_void_other_tenants_transaction(self, poster, make_request, accounts, other_company_id):
        """Test that a tenant cannot void another tenant's transaction."""
        posted = poster.create_transaction(make_request(expense(accounts))).transaction
        with pytest.raises(NotFoundError):
            poster.void(other_company_id, posted.id)

    def test_void_race_has_one_winner(self, poster, make_request, accounts, company_id):
        """Test that concurrent voids succeed exactly once."""
        posted = poster.create_transaction(make_request(expense(accounts))).transaction
        outcomes = []

        def void():
            try:
                poster.void(company_id, posted.id)
                outcomes.append("voided")
            except StateConflictError:
                outcomes.append("conflict")

        threads = [threading.Thread(target=void) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert outcomes.count("voided") == 1
        assert outcomes.count("conflict") == 7


class TestReads:
    """Tests for reading transactions back."""

    def test_get_transaction_with_entries(self, poster, make_request, accounts, company_id):
        """Test that entries come back in line order."""
        posted = poster.create_transaction(make_request(expense(accounts))).transaction
        full = poster.get_transaction(company_id, posted.id)
        assert full.debit_total == full.credit_total == Decimal("100.00")
        assert [e.account_id for e in full.entries] == [accounts["6000"].id, accounts["1001"].id]

    def test_read_waits_for_open_unit(
        self, poster, store, make_request, accounts, company_id, monkeypatch
    ):
        """Test that a reader never sees a header without its entries."""
        header_written = threading.Event()
        release = threading.Event()
        seen = {}
        original_insert = store.insert_entries

        def slow_insert(entries):
            seen["id"] = entries[0].transaction_id
            header_written.set()
            release.wait(timeout=5)
            return original_insert(entries)

        monkeypatch.setattr(store, "insert_entries", slow_insert)
        writer = threading.Thread(
            target=lambda: poster.create_transaction(make_request(expense(accounts)))
        )
        writer.start()
        assert header_written.wait(timeout=5)

        reader = threading.Thread(
            target=lambda: seen.setdefault("read", poster.get_transaction(company_id, seen["id"]))
        )
        reader.start()
        reader.join(timeout=0.1)
        assert reader.is_alive()

        release.set()
        writer.join()
        reader.join()
        assert [e.line_number for e in seen["read"].entries] == [1, 2]

    def test_get_unknown_transaction(self, poster, company_id):
        """Test NotFoundError for an unknown id."""
        with pytest.raises(NotFoundError):
            poster.get_transaction(company_id, uuid4())

    def test_list_transactions_filters(self, poster, make_request, accounts, company_id):
        """Test status, date and account filters."""
        first = poster.create_transaction(
            make_request(expense(accounts), transaction_date=date(2024, 1, 1))
        ).transaction
        poster.create_transaction(make_request(
            [line(accounts["1001"], debit="20.00"), line(accounts["4000"], credit="20.00")],
            transaction_date=date(2024, 2, 1),
        ))
        poster.void(company_id, first.id)

        assert len(poster.list_transactions(company_id)) == 2
        assert len(poster.list_transactions(company_id, status=TransactionStatus.POSTED)) == 1
        assert len(poster.list_transactions(company_id, date_from=date(2024, 1, 15))) == 1
        revenue = poster.list_transactions(company_id, account_id=accounts["4000"].id)
        assert [t.transaction_number for t in revenue] == [2]


class DeactivateDuringPosting(JournalValidator):
    """Starts a deactivation of one account right after validating."""

    def __init__(self, store, registry, company_id, account_id):
        super().__init__(store, tolerance=Decimal("0.01"))
        self.registry = registry
        self.company_id = company_id
        self.account_id = account_id
        self.thread = None
        self.outcome = None

    def validate(self, request, today=None):
        result = super().validate(request, today)
        if self.thread is None:
            self.thread = threading.Thread(target=self._deactivate)
            self.thread.start()
            self.thread.join(timeout=0.2)
        return result

    def _deactivate(self):
        try:
            self.registry.deactivate_account(self.company_id, self.account_id)
            self.outcome = "deactivated"
        except LedgerValidationError as e:
            self.outcome = e.issues[0].issue_type


class TestPostingAgainstDeactivation:
    """Tests for posting while an account is being deactivated."""

    def test_account_stays_active_once_used(
        self, store, registry, balances, audit_logger, ledger_settings,
        make_request, accounts, company_id,
    ):
        """Test that deactivation waits for the posting and then refuses."""
        payable = accounts["2000"]
        validator = DeactivateDuringPosting(store, registry, company_id, payable.id)
        poster = TransactionPoster(store, validator, audit_logger, ledger_settings)

        result = poster.create_transaction(make_request([
            line(payable, debit="100.00"),
            line(accounts["4000"], credit="100.00"),
        ]))
        validator.thread.join()

        assert result.success
        assert validator.outcome == "account_in_use"
        assert store.get_account(company_id, payable.id).is_active

        trial_balance = balances.get_trial_balance(company_id, date(2024, 12, 31))
        assert trial_balance.is_balanced
        assert trial_balance.debit_total == trial_balance.credit_total == Decimal("100.00")

    def test_deactivated_first_rejects_posting(
        self, poster, registry, store, make_request, accounts, company_id
    ):
        """Test that a posting after deactivation is refused with no write."""
        registry.deactivate_account(company_id, accounts["2000"].id)

        result = poster.create_transaction(make_request([
            line(accounts["2000"], debit="100.00"),
            line(accounts["4000"], credit="100.00"),
        ]))

        assert not result.success
        assert [e.issue_type for e in result.errors] == ["inactive_account"]
        assert store.list_transactions(company_id) == []
