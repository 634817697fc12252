"""
Account Registry

Resolves and maintains the tenant's chart of accounts. Seeding a chart is
someone else's job; this module only offers the lookups the ledger needs
and the two mutations that keep the ledger consistent.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from ledger_core.audit import AuditLogger
from ledger_core.errors import IntegrityError, LedgerValidationError, NotFoundError
from ledger_core.models.ledger import ZERO, Account, AccountType, ValidationIssue
from ledger_core.services.storage import LedgerStoreInterface

logger = structlog.get_logger(__name__)


class AccountRegistry:
    """Tenant-scoped access to accounts."""

    def __init__(
        self,
        store: LedgerStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit = audit_logger or AuditLogger()

    def resolve_account(self, company_id: UUID, account_id: UUID) -> Account:
        """
        Raises:
            NotFoundError: If the account does not exist for this tenant
        """
        account = self._store.get_account(company_id, account_id)
        if account is None:
            raise NotFoundError("account", account_id, company_id)
        return account

    def resolve_system_account(self, company_id: UUID, code: str) -> Account:
        """
        Look an account up by code.

        AI proposals name accounts by code; system accounts are the
        well-known codes of the tenant's chart.

        Raises:
            NotFoundError: If no account of the tenant has this code
        """
        account = self._store.get_account_by_code(company_id, code.strip())
        if account is None:
            raise NotFoundError("account", code, company_id)
        return account

    def list_accounts(self, company_id: UUID, active_only: bool = False) -> list[Account]:
        return self._store.list_accounts(company_id, active_only=active_only)

    def create_account(
        self,
        company_id: UUID,
        code: str,
        name: str,
        type: AccountType,
        description: Optional[str] = None,
        parent_account_id: Optional[UUID] = None,
        is_system_account: bool = False,
        opening_balance: Decimal = ZERO,
    ) -> Account:
        """
        Create an account. normal_balance is derived from type.

        Raises:
            LedgerValidationError: If the code is taken or the parent is unknown
        """
        issues = []
        if self._store.get_account_by_code(company_id, code.strip()):
            issues.append(ValidationIssue(
                field="code",
                issue_type="duplicate_code",
                message=f"Account code {code} already exists",
            ))
        if parent_account_id and self._store.get_account(company_id, parent_account_id) is None:
            issues.append(ValidationIssue(
                field="parent_account_id",
                issue_type="account_not_found",
                message=f"Parent account {parent_account_id} not found",
            ))
        if issues:
            raise LedgerValidationError(issues)

        account = Account(
            company_id=company_id,
            code=code,
            name=name,
            type=type,
            description=description,
            parent_account_id=parent_account_id,
            is_system_account=is_system_account,
            opening_balance=opening_balance,
        )
        try:
            with self._store.atomic():
                self._store.add_account(account)
        except IntegrityError as e:
            # Lost a race with another create of the same code
            raise LedgerValidationError([ValidationIssue(
                field="code",
                issue_type="duplicate_code",
                message=str(e),
            )]) from e

        self._audit.log_account_created(company_id, account.id, account.code, account.name)
        return account

    def deactivate_account(self, company_id: UUID, account_id: UUID) -> Account:
        """
        Deactivate an account that no posted transaction uses.

        Raises:
            NotFoundError: If the account does not exist for this tenant
            LedgerValidationError: If posted entries reference the account
        """
        with self._store.atomic():
            self._store.lock_accounts(company_id, [account_id])
            account = self.resolve_account(company_id, account_id)
            if self._store.account_has_posted_entries(company_id, account_id):
                raise LedgerValidationError([ValidationIssue(
                    field="account_id",
                    issue_type="account_in_use",
                    message=f"Account {account.code} has posted entries and cannot be deactivated",
                    suggested_fix="Void the transactions first or keep the account active",
                )])
            updated = self._store.set_account_active(company_id, account_id, False)

        logger.info("account_deactivated", company_id=str(company_id), code=account.code)
        self._audit.log_account_deactivated(company_id, account_id, account.code)
        return updated
