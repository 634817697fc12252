"""Tests for the audit logger and its sinks."""

from uuid import uuid4

import pytest

from ledger_core.audit import AuditLogger, create_correlation_id
from ledger_core.models import AuditEventBuilder, AuditEventType, AuditSeverity, ValidationIssue
from ledger_core.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    InMemoryAuditStorage,
    StorageError,
)
from ledger_core.services.storage.google_sheets import AUDIT_COLUMNS


class FailingStorage(AuditStorageInterface):
    def append_event(self, event):
        raise RuntimeError("sink down")

    def get_events_by_correlation_id(self, correlation_id):
        return []

    def get_events_by_entity(self, entity_type, entity_id):
        return []

    def get_recent_events(self, limit=100):
        return []


class FakeWorksheet:
    def __init__(self):
        self.rows = [list(AUDIT_COLUMNS)]

    def append_row(self, row, value_input_option=None):
        self.rows.append([str(value) for value in row])

    def get_all_values(self):
        return self.rows


class FakeSheetsClient:
    def __init__(self, sheet=None, error=None):
        self.sheet = sheet or FakeWorksheet()
        self.error = error

    def get_audit_sheet(self):
        if self.error:
            raise self.error
        return self.sheet


class TestAuditLogger:
    """Tests for AuditLogger."""

    def test_events_reach_storage(self):
        """Test that logged events are persisted."""
        storage = InMemoryAuditStorage()
        audit = AuditLogger(storage)
        company_id, correlation_id = uuid4(), create_correlation_id()

        audit.log_transaction_posted(company_id, uuid4(), 1, "10.00", correlation_id=correlation_id)
        audit.log_transaction_rejected(
            company_id,
            issues=[ValidationIssue(field="entries", issue_type="unbalanced", message="off by 1")],
            difference="1.00",
            correlation_id=correlation_id,
        )

        events = storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [
            AuditEventType.TRANSACTION_POSTED,
            AuditEventType.TRANSACTION_REJECTED,
        ]
        assert events[1].severity == AuditSeverity.WARNING
        assert events[1].details["issues"][0]["issue_type"] == "unbalanced"

    def test_storage_failure_does_not_raise(self):
        """Test that a broken sink never fails the caller."""
        audit = AuditLogger(FailingStorage())
        assert audit.log_account_created(uuid4(), uuid4(), "1001", "Cash") is None

    def test_local_only_logger(self):
        """Test logging with no storage configured."""
        audit = AuditLogger()
        audit.log_error("posting_crashed", "boom", company_id=uuid4())


class TestGoogleSheetsAuditStorage:
    """Tests for the Sheets audit export with a fake client."""

    def test_append_and_read_back(self):
        """Test that a row written to the sheet reads back as the same event."""
        storage = GoogleSheetsAuditStorage(FakeSheetsClient())
        audit = AuditLogger(storage)
        company_id, suggestion_id, correlation_id = uuid4(), uuid4(), uuid4()

        audit.log_suggestion_created(company_id, suggestion_id, uuid4(), 0.87, correlation_id)

        events = storage.get_events_by_entity("suggestion", suggestion_id)
        assert len(events) == 1
        assert events[0].event_type == AuditEventType.SUGGESTION_CREATED
        assert events[0].company_id == company_id
        assert events[0].details["confidence_score"] == 0.87
        assert storage.get_events_by_correlation_id(correlation_id)[0].event_id == events[0].event_id

    def test_append_failure_returns_false(self):
        """Test that a sheet outage is swallowed on write."""
        storage = GoogleSheetsAuditStorage(FakeSheetsClient(error=RuntimeError("quota")))
        event = AuditEventBuilder.system_error("sheet_test", "boom")
        assert AuditLogger(storage).log(event) is False

    def test_read_failure_raises_storage_error(self):
        """Test that reads surface sheet errors."""
        storage = GoogleSheetsAuditStorage(FakeSheetsClient(error=RuntimeError("quota")))
        with pytest.raises(StorageError):
            storage.get_recent_events()

    def test_corrupt_rows_skipped(self):
        """Test that unreadable rows do not break a read."""
        sheet = FakeWorksheet()
        sheet.rows.append(["not-a-uuid", "yesterday", "nonsense"])
        storage = GoogleSheetsAuditStorage(FakeSheetsClient(sheet))
        assert storage.get_recent_events() == []
