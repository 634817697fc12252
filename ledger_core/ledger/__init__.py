"""
Ledger Package

Posting, voiding and reading the double-entry ledger.
"""

from ledger_core.ledger.accounts import AccountRegistry
from ledger_core.ledger.balances import BalanceCalculator
from ledger_core.ledger.general_ledger import GeneralLedgerQuery, query_general_ledger
from ledger_core.ledger.poster import TransactionPoster

__all__ = [
    "AccountRegistry",
    "BalanceCalculator",
    "GeneralLedgerQuery",
    "TransactionPoster",
    "query_general_ledger",
]
