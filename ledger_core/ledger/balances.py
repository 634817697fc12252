"""
Balance Calculator

Pure reader over posted entries.

Sign convention used everywhere a balance is shown:
- debit-normal accounts (assets, expenses):       debits - credits
- credit-normal accounts (liabilities, equity,
  revenue):                                        credits - debits

Only POSTED transactions count; void rows and entries with a posting_date
after the as-of date are excluded. Opening balances are not added.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from ledger_core.config import get_settings
from ledger_core.errors import NotFoundError
from ledger_core.models.ledger import (
    ZERO,
    AccountBalance,
    NormalBalance,
    TrialBalance,
    TrialBalanceCheck,
    TrialBalanceRow,
    signed_balance,
)
from ledger_core.services.storage import LedgerStoreInterface


class BalanceCalculator:
    """Account balances and the trial balance."""

    def __init__(self, store: LedgerStoreInterface, tolerance: Optional[Decimal] = None):
        self._store = store
        self._tolerance = tolerance if tolerance is not None else get_settings().ledger.balance_tolerance

    def get_account_balance(
        self,
        company_id: UUID,
        account_id: UUID,
        as_of_date: Optional[date] = None,
    ) -> AccountBalance:
        """
        Balance of one account, unbounded when as_of_date is None.

        Raises:
            NotFoundError: If the account does not exist for this tenant
        """
        account = self._store.get_account(company_id, account_id)
        if account is None:
            raise NotFoundError("account", account_id, company_id)

        debit_total = credit_total = ZERO
        for _, entry in self._store.list_posted_entries(
            company_id, account_id=account_id, date_to=as_of_date
        ):
            debit_total += entry.debit_amount
            credit_total += entry.credit_amount

        return AccountBalance(
            account_id=account_id,
            normal_balance=account.normal_balance,
            debit_total=debit_total,
            credit_total=credit_total,
            balance=signed_balance(account.normal_balance, debit_total, credit_total),
            as_of_date=as_of_date,
        )

    def get_trial_balance(self, company_id: UUID, as_of_date: date) -> TrialBalance:
        """
        One row per active account, ordered by code.

        A positive balance is shown in the column matching the account's
        normal balance; a negative one moves to the opposite column as a
        positive amount.
        """
        totals: dict[UUID, list[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
        for _, entry in self._store.list_posted_entries(company_id, date_to=as_of_date):
            pair = totals[entry.account_id]
            pair[0] += entry.debit_amount
            pair[1] += entry.credit_amount

        rows = []
        for account in self._store.list_accounts(company_id, active_only=True):
            debit_total, credit_total = totals.get(account.id, (ZERO, ZERO))
            balance = signed_balance(account.normal_balance, debit_total, credit_total)
            on_normal_side = balance >= 0
            is_debit_column = (account.normal_balance == NormalBalance.DEBIT) == on_normal_side
            rows.append(TrialBalanceRow(
                account=account,
                debit_total=debit_total,
                credit_total=credit_total,
                balance=balance,
                debit_total_for_display=abs(balance) if is_debit_column else ZERO,
                credit_total_for_display=ZERO if is_debit_column else abs(balance),
            ))

        check = self.validate_trial_balance(rows)
        return TrialBalance(
            company_id=company_id,
            as_of_date=as_of_date,
            rows=rows,
            debit_total=check.debit_total,
            credit_total=check.credit_total,
            is_balanced=check.is_balanced,
            difference=check.difference,
        )

    def validate_trial_balance(self, rows: Iterable[TrialBalanceRow]) -> TrialBalanceCheck:
        """Column totals; balanced when they agree within tolerance."""
        debit_total = credit_total = ZERO
        for row in rows:
            debit_total += row.debit_total_for_display
            credit_total += row.credit_total_for_display
        return TrialBalanceCheck(
            debit_total=debit_total,
            credit_total=credit_total,
            is_balanced=abs(debit_total - credit_total) < self._tolerance,
        )
