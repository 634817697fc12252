"""
General Ledger Query

Lists posted entries joined with their transaction header and account.

Display order: posting_date desc, transaction_number desc, line_number asc.

When the filter names a single account, each line carries the running
balance of that account: start at zero, walk the filtered lines in reverse
display order (oldest first) applying the account's sign convention, then
present them newest first. Pagination is applied after the running balance
is computed, so a page shows the same balances as the full listing.
"""

from decimal import Decimal
from typing import Iterator, Optional

from ledger_core.errors import NotFoundError
from ledger_core.models.ledger import (
    ZERO,
    Account,
    LedgerFilter,
    LedgerLine,
    signed_balance,
)
from ledger_core.services.storage import LedgerStoreInterface


class GeneralLedgerQuery:
    """
    A lazy, finite, restartable view of the general ledger.

    Nothing is read until iteration starts, and every iteration reads the
    store again, so iterating twice over an unchanged ledger yields the
    same lines.

    Usage:
        for line in GeneralLedgerQuery(store, LedgerFilter(company_id=cid)):
            ...
    """

    def __init__(self, store: LedgerStoreInterface, ledger_filter: LedgerFilter):
        self._store = store
        self.filter = ledger_filter

    def __iter__(self) -> Iterator[LedgerLine]:
        f = self.filter
        account: Optional[Account] = None
        if f.account_id is not None:
            account = self._store.get_account(f.company_id, f.account_id)
            if account is None:
                raise NotFoundError("account", f.account_id, f.company_id)

        accounts = {a.id: a for a in self._store.list_accounts(f.company_id)}
        rows = self._store.list_posted_entries(
            f.company_id,
            account_id=f.account_id,
            date_from=f.date_from,
            date_to=f.date_to,
        )

        lines = []
        for transaction, entry in rows:
            entry_account = accounts[entry.account_id]
            lines.append(LedgerLine(
                entry=entry,
                transaction_number=transaction.transaction_number,
                transaction_date=transaction.transaction_date,
                posting_date=transaction.posting_date,
                reference=transaction.reference,
                transaction_description=transaction.description,
                account_code=entry_account.code,
                account_name=entry_account.name,
                normal_balance=entry_account.normal_balance,
            ))
        lines.sort(key=lambda line: line.sort_key)

        if account is not None:
            lines = self._with_running_balance(lines, account)

        end = None if f.limit is None else f.offset + f.limit
        yield from lines[f.offset:end]

    @staticmethod
    def _with_running_balance(lines: list[LedgerLine], account: Account) -> list[LedgerLine]:
        running: Decimal = ZERO
        for index in range(len(lines) - 1, -1, -1):
            entry = lines[index].entry
            running += signed_balance(account.normal_balance, entry.debit_amount, entry.credit_amount)
            lines[index] = lines[index].model_copy(update={"running_balance": running})
        return lines


def query_general_ledger(
    store: LedgerStoreInterface,
    ledger_filter: LedgerFilter,
) -> GeneralLedgerQuery:
    """Build a general ledger view for the filter."""
    return GeneralLedgerQuery(store, ledger_filter)
