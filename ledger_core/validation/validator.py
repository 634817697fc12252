"""
Two-Stage Journal Validation

DESIGN DECISION: Candidate entries are validated in two distinct stages:

STAGE 1 - STRUCTURE:
- At least two entries
- Each entry has exactly one strictly positive side
- Negative amounts and sub-cent precision are rejected
- Sum of debits equals sum of credits within tolerance
- This needs nothing but the entries themselves

STAGE 2 - ACCOUNTS:
- Every account exists for the tenant
- Every account is active
- This needs the ledger store

WHY BOTH STAGES ALWAYS RUN:
A reviewer fixing an AI proposal wants every problem at once,
not one round trip per mistake.

IMPORTANT: Validation NEVER silently fixes issues. An entry of 10.005 is
reported, not rounded; an unbalanced entry is rejected, not plugged.
"""

from datetime import date
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID

from ledger_core.config import get_settings
from ledger_core.models.ledger import (
    CENT,
    ZERO,
    Account,
    JournalLine,
    JournalValidationResult,
    TransactionRequest,
    ValidationIssue,
)
from ledger_core.services.storage import LedgerStoreInterface


def _has_sub_cent_precision(amount: Decimal) -> bool:
    return amount != amount.quantize(CENT)


class JournalValidator:
    """
    Validates candidate journal entries through a two-stage pipeline.

    Stage 1: Structure (can run without storage)
    Stage 2: Accounts (needs the store to resolve accounts)
    """

    def __init__(
        self,
        store: LedgerStoreInterface,
        tolerance: Optional[Decimal] = None,
    ):
        self._store = store
        self._tolerance = tolerance if tolerance is not None else get_settings().ledger.balance_tolerance

    def validate_structure(
        self,
        entries: Sequence[JournalLine],
        posting_date: Optional[date] = None,
        today: Optional[date] = None,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Structural validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if len(entries) < 2:
            issues.append(ValidationIssue(
                field="entries",
                issue_type="too_few_entries",
                message=f"A transaction needs at least 2 entries, got {len(entries)}",
                suggested_fix="Add the balancing side of the entry",
            ))

        for index, line in enumerate(entries, start=1):
            issues.extend(self._check_line(index, line))

        debit_total, credit_total = self.totals(entries)
        difference = debit_total - credit_total
        if abs(difference) >= self._tolerance:
            issues.append(ValidationIssue(
                field="entries",
                issue_type="unbalanced",
                message=(
                    f"Debits ({debit_total}) do not equal credits ({credit_total}); "
                    f"difference {difference}"
                ),
                suggested_fix="Adjust the amounts so both sides are equal",
            ))

        today = today or date.today()
        if posting_date and posting_date > today:
            issues.append(ValidationIssue(
                field="posting_date",
                issue_type="future_date",
                message=f"Posting date ({posting_date}) is in the future",
                severity="warning",
                suggested_fix="Balances exclude this entry until its posting date",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _check_line(self, line_number: int, line: JournalLine) -> list[ValidationIssue]:
        issues = []
        debit, credit = line.debit_amount, line.credit_amount

        if line.account_id is None and not line.account_code:
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="missing_account",
                message=f"Line {line_number} has no account",
                line_number=line_number,
            ))

        for field, amount in (("debit_amount", debit), ("credit_amount", credit)):
            if amount < 0:
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="negative_amount",
                    message=f"Line {line_number}: {field} cannot be negative ({amount})",
                    line_number=line_number,
                    suggested_fix="Put the amount on the opposite side instead",
                ))
            elif _has_sub_cent_precision(amount):
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="invalid_precision",
                    message=f"Line {line_number}: {field} has more than 2 decimal places ({amount})",
                    line_number=line_number,
                ))

        if debit > 0 and credit > 0:
            issues.append(ValidationIssue(
                field="entries",
                issue_type="both_sides",
                message=f"Line {line_number} has both a debit and a credit amount",
                line_number=line_number,
                suggested_fix="Split it into two lines",
            ))
        elif debit == 0 and credit == 0:
            issues.append(ValidationIssue(
                field="entries",
                issue_type="zero_amount",
                message=f"Line {line_number} has neither a debit nor a credit amount",
                line_number=line_number,
            ))

        return issues

    def validate_accounts(
        self,
        company_id: UUID,
        entries: Sequence[JournalLine],
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: every account resolves to an active account of the tenant.

        Lines naming an account only by an unresolved code are reported
        as not found.

        Returns: (is_valid, list_of_issues)
        """
        issues = []
        cache: dict[UUID, Optional[Account]] = {}

        for index, line in enumerate(entries, start=1):
            if line.account_id is None:
                if line.account_code:
                    issues.append(ValidationIssue(
                        field="account_code",
                        issue_type="account_not_found",
                        message=f"Line {index}: account code {line.account_code} does not exist",
                        line_number=index,
                        suggested_fix="Pick an account from the chart of accounts",
                    ))
                continue

            if line.account_id not in cache:
                cache[line.account_id] = self._store.get_account(company_id, line.account_id)
            account = cache[line.account_id]

            if account is None:
                issues.append(ValidationIssue(
                    field="account_id",
                    issue_type="account_not_found",
                    message=f"Line {index}: account {line.account_id} not found",
                    line_number=index,
                ))
            elif not account.is_active:
                issues.append(ValidationIssue(
                    field="account_id",
                    issue_type="inactive_account",
                    message=f"Line {index}: account {account.code} - {account.name} is inactive",
                    line_number=index,
                ))

        return not issues, issues

    def validate(
        self,
        request: TransactionRequest,
        today: Optional[date] = None,
    ) -> JournalValidationResult:
        """
        Run both validation stages and collect every issue.

        Args:
            request: The candidate transaction
            today: Reference date for the future-date warning

        Returns:
            JournalValidationResult with all issues found
        """
        structure_valid, structure_issues = self.validate_structure(
            request.entries,
            posting_date=request.effective_posting_date,
            today=today,
        )
        accounts_valid, account_issues = self.validate_accounts(
            request.company_id,
            request.entries,
        )
        debit_total, credit_total = self.totals(request.entries)

        return JournalValidationResult(
            structure_valid=structure_valid,
            accounts_valid=accounts_valid,
            issues=structure_issues + account_issues,
            debit_total=debit_total,
            credit_total=credit_total,
        )

    @staticmethod
    def totals(entries: Sequence[JournalLine]) -> tuple[Decimal, Decimal]:
        """Sum of debits and sum of credits, as given."""
        debit_total = sum((line.debit_amount for line in entries), ZERO)
        credit_total = sum((line.credit_amount for line in entries), ZERO)
        return debit_total, credit_total

    @staticmethod
    def get_user_friendly_summary(result: JournalValidationResult) -> str:
        """
        Generate a reviewer-facing summary of validation results.
        """
        if result.is_valid and not result.issues:
            return "✅ Entry is balanced and every account is valid."

        lines = []
        errors = result.errors
        if errors:
            lines.append("❌ The entry cannot be posted:")
            for issue in errors:
                lines.append(f"   • {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     💡 {issue.suggested_fix}")

        warnings = [issue for issue in result.issues if issue.severity == "warning"]
        if warnings:
            lines.append("")
            lines.append("⚠️ Please verify the following:")
            for issue in warnings:
                lines.append(f"   • {issue.message}")

        return "\n".join(lines).strip()
