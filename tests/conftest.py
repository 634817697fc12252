"""
Shared fixtures.

Every test gets a fresh in-memory store seeded with a small chart of
accounts for one tenant, plus the components wired on top of it. No test
talks to a real database, model or spreadsheet.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_core.audit import AuditLogger
from ledger_core.config import AISettings, LedgerSettings
from ledger_core.ledger import AccountRegistry, BalanceCalculator, TransactionPoster
from ledger_core.models import Account, AccountType, JournalLine, TransactionRequest
from ledger_core.services.storage import InMemoryAuditStorage, InMemoryLedgerStore
from ledger_core.validation import JournalValidator
from ledger_core.workflow import SuggestionWorkflow


CHART = (
    ("1001", "Cash", AccountType.ASSETS),
    ("2000", "Accounts Payable", AccountType.LIABILITIES),
    ("3000", "Owner's Equity", AccountType.EQUITY),
    ("4000", "Sales Revenue", AccountType.REVENUE),
    ("6000", "General Expenses", AccountType.EXPENSES),
)


def seed_chart(store, company_id) -> dict[str, Account]:
    """Add the standard chart for a tenant; returns accounts by code."""
    accounts = {}
    for code, name, account_type in CHART:
        account = Account(company_id=company_id, code=code, name=name, type=account_type)
        store.add_account(account)
        accounts[code] = account
    return accounts


def line(account, debit="0", credit="0", **kwargs) -> JournalLine:
    return JournalLine(
        account_id=account.id,
        debit_amount=Decimal(debit),
        credit_amount=Decimal(credit),
        **kwargs,
    )


@pytest.fixture
def company_id():
    return uuid4()


@pytest.fixture
def other_company_id():
    return uuid4()


@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def accounts(store, company_id):
    return seed_chart(store, company_id)


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def ledger_settings():
    return LedgerSettings()


@pytest.fixture
def ai_settings():
    return AISettings(provider="mock")


@pytest.fixture
def validator(store):
    return JournalValidator(store, tolerance=Decimal("0.01"))


@pytest.fixture
def poster(store, validator, audit_logger, ledger_settings):
    return TransactionPoster(store, validator, audit_logger, ledger_settings)


@pytest.fixture
def balances(store):
    return BalanceCalculator(store, tolerance=Decimal("0.01"))


@pytest.fixture
def registry(store, audit_logger):
    return AccountRegistry(store, audit_logger)


@pytest.fixture
def workflow(store, poster, audit_logger, ai_settings):
    return SuggestionWorkflow(store, poster, audit_logger, ai_settings)


@pytest.fixture
def make_request(company_id):
    """Build a TransactionRequest for the default tenant."""

    def _make(entries, transaction_date=date(2024, 1, 15), **kwargs):
        return TransactionRequest(
            company_id=kwargs.pop("company_id", company_id),
            transaction_date=transaction_date,
            entries=entries,
            **kwargs,
        )

    return _make
