"""Tests for the general ledger query."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import line
from ledger_core.errors import NotFoundError
from ledger_core.ledger import query_general_ledger
from ledger_core.models import LedgerFilter


@pytest.fixture
def ledger(poster, make_request, accounts, company_id):
    """Three postings on cash over three days, the middle one voided later."""
    january = [
        (date(2024, 1, 1), [line(accounts["1001"], debit="1000.00"), line(accounts["3000"], credit="1000.00")]),
        (date(2024, 1, 2), [line(accounts["6000"], debit="200.00"), line(accounts["1001"], credit="200.00")]),
        (date(2024, 1, 3), [line(accounts["1001"], debit="50.00"), line(accounts["4000"], credit="50.00")]),
    ]
    return [
        poster.create_transaction(make_request(entries, transaction_date=day)).transaction
        for day, entries in january
    ]


class TestGeneralLedgerQuery:
    """Tests for GeneralLedgerQuery."""

    def test_order_newest_first_lines_ascending(self, store, ledger, company_id):
        """Test display order."""
        lines = list(query_general_ledger(store, LedgerFilter(company_id=company_id)))
        keys = [(l.transaction_number, l.entry.line_number) for l in lines]
        assert keys == [(3, 1), (3, 2), (2, 1), (2, 2), (1, 1), (1, 2)]
        assert all(l.running_balance is None for l in lines)

    def test_running_balance_for_single_account(self, store, ledger, accounts, company_id):
        """Test that the running balance accumulates oldest first."""
        lines = list(query_general_ledger(
            store, LedgerFilter(company_id=company_id, account_id=accounts["1001"].id)
        ))
        assert [l.posting_date.day for l in lines] == [3, 2, 1]
        assert [l.running_balance for l in lines] == [
            Decimal("850.00"),
            Decimal("800.00"),
            Decimal("1000.00"),
        ]
        assert lines[0].account_code == "1001"

    def test_running_balance_for_credit_normal_account(self, store, ledger, accounts, company_id):
        """Test the sign convention on a credit-normal account."""
        lines = list(query_general_ledger(
            store, LedgerFilter(company_id=company_id, account_id=accounts["3000"].id)
        ))
        assert [l.running_balance for l in lines] == [Decimal("1000.00")]

    def test_pagination_keeps_running_balance(self, store, ledger, accounts, company_id):
        """Test that a page shows the same balances as the full listing."""
        page = list(query_general_ledger(store, LedgerFilter(
            company_id=company_id,
            account_id=accounts["1001"].id,
            limit=1,
            offset=1,
        )))
        assert len(page) == 1
        assert page[0].running_balance == Decimal("800.00")

    def test_date_range(self, store, ledger, company_id):
        """Test date_from and date_to on the posting date."""
        lines = list(query_general_ledger(store, LedgerFilter(
            company_id=company_id,
            date_from=date(2024, 1, 2),
            date_to=date(2024, 1, 2),
        )))
        assert {l.transaction_number for l in lines} == {2}

    def test_void_transactions_excluded(self, store, poster, ledger, accounts, company_id):
        """Test that voided transactions drop out and balances recompute."""
        poster.void(company_id, ledger[1].id)
        lines = list(query_general_ledger(
            store, LedgerFilter(company_id=company_id, account_id=accounts["1001"].id)
        ))
        assert [l.transaction_number for l in lines] == [3, 1]
        assert lines[0].running_balance == Decimal("1050.00")

    def test_restartable(self, store, ledger, company_id):
        """Test that iterating twice yields the same lines."""
        query = query_general_ledger(store, LedgerFilter(company_id=company_id))
        assert list(query) == list(query)

    def test_tenant_isolation(self, store, ledger, other_company_id):
        """Test that another tenant sees an empty ledger."""
        assert list(query_general_ledger(store, LedgerFilter(company_id=other_company_id))) == []

    def test_unknown_account(self, store, ledger, company_id):
        """Test NotFoundError for an account filter that does not resolve."""
        query = query_general_ledger(store, LedgerFilter(company_id=company_id, account_id=uuid4()))
        with pytest.raises(NotFoundError):
            list(query)
