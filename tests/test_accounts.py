"""Tests for the account registry and settings checks."""

from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import line
from ledger_core.config import get_settings, validate_all_settings
from ledger_core.errors import LedgerValidationError, NotFoundError
from ledger_core.models import AccountType, AuditEventType, NormalBalance


class TestAccountRegistry:
    """Tests for AccountRegistry."""

    def test_create_derives_normal_balance(self, registry, company_id, audit_storage):
        """Test that new accounts get the normal balance of their type."""
        account = registry.create_account(company_id, "2100", "Credit Card", AccountType.LIABILITIES)

        assert account.normal_balance == NormalBalance.CREDIT
        assert registry.resolve_account(company_id, account.id) == account
        events = audit_storage.get_events_by_entity("account", account.id)
        assert [e.event_type for e in events] == [AuditEventType.ACCOUNT_CREATED]

    def test_duplicate_code(self, registry, accounts, company_id):
        """Test that codes are unique within a tenant."""
        with pytest.raises(LedgerValidationError) as excinfo:
            registry.create_account(company_id, "1001", "Petty Cash", AccountType.ASSETS)
        assert excinfo.value.issues[0].issue_type == "duplicate_code"

    def test_unknown_parent(self, registry, company_id):
        """Test that a parent must belong to the tenant."""
        with pytest.raises(LedgerValidationError) as excinfo:
            registry.create_account(
                company_id, "1100", "Bank", AccountType.ASSETS, parent_account_id=uuid4()
            )
        assert excinfo.value.issues[0].field == "parent_account_id"

    def test_resolve_is_tenant_scoped(self, registry, accounts, other_company_id):
        """Test that another tenant cannot resolve our accounts."""
        with pytest.raises(NotFoundError):
            registry.resolve_account(other_company_id, accounts["1001"].id)
        with pytest.raises(NotFoundError):
            registry.resolve_system_account(other_company_id, "1001")

    def test_resolve_system_account(self, registry, accounts, company_id):
        """Test lookup by code."""
        assert registry.resolve_system_account(company_id, " 4000 ").id == accounts["4000"].id

    def test_unused_account_can_be_deactivated(self, registry, accounts, company_id):
        """Test deactivation of an account without postings."""
        updated = registry.deactivate_account(company_id, accounts["2000"].id)
        assert not updated.is_active
        assert "2000" not in [a.code for a in registry.list_accounts(company_id, active_only=True)]

    def test_used_account_cannot_be_deactivated(
        self, registry, poster, accounts, make_request, company_id
    ):
        """Test that posted entries pin an account active."""
        posted = poster.create_transaction(make_request([
            line(accounts["6000"], debit="30.00"),
            line(accounts["2000"], credit="30.00"),
        ]))

        with pytest.raises(LedgerValidationError) as excinfo:
            registry.deactivate_account(company_id, accounts["2000"].id)
        assert excinfo.value.issues[0].issue_type == "account_in_use"
        assert registry.resolve_account(company_id, accounts["2000"].id).is_active

        poster.void(company_id, posted.transaction.id)
        assert not registry.deactivate_account(company_id, accounts["2000"].id).is_active

    def test_opening_balance_kept(self, registry, company_id):
        """Test that the opening balance is stored as given."""
        account = registry.create_account(
            company_id, "1200", "Inventory", AccountType.ASSETS, opening_balance=Decimal("500.00")
        )
        assert account.opening_balance == Decimal("500.00")


class TestSettingsCheck:
    """Tests for validate_all_settings."""

    def test_reports_each_group(self, monkeypatch):
        """Test that every settings group is reported."""
        monkeypatch.setenv("AI_PROVIDER", "mock")
        get_settings.cache_clear()
        try:
            results = validate_all_settings()
        finally:
            get_settings.cache_clear()

        for name in ("ledger", "database", "ai", "gemini", "ollama", "google_sheets"):
            assert name in results
        assert results["ledger"] is True
        assert results["ai"] is True
