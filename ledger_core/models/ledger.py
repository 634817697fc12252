"""
Core Ledger Models

These models define the strict schemas for everything the ledger stores
and everything it returns. They are designed to:
1. Enforce type safety at the boundary (request models)
2. Keep stored rows immutable (frozen models, changed only via model_copy)
3. Carry money as Decimal, never float
4. Make tenant scoping explicit (every stored row has company_id)

DESIGN DECISION: Request models only check SHAPE (types, required fields).
Accounting rules (exactly one side positive, debits == credits, active
accounts) are checked by the JournalValidator so every problem can be
reported at once as a ValidationIssue instead of failing on the first one.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Any) -> Decimal:
    """Convert a number to a Decimal rounded to cents."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """The five account classes of the accounting equation."""
    ASSETS = "assets"
    LIABILITIES = "liabilities"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSES = "expenses"


class NormalBalance(str, Enum):
    """Side on which an account's balance is conventionally positive."""
    DEBIT = "debit"
    CREDIT = "credit"


DEBIT_NORMAL_TYPES = frozenset({AccountType.ASSETS, AccountType.EXPENSES})


def normal_balance_for(account_type: AccountType) -> NormalBalance:
    """Assets and expenses are debit-normal; everything else is credit-normal."""
    if AccountType(account_type) in DEBIT_NORMAL_TYPES:
        return NormalBalance.DEBIT
    return NormalBalance.CREDIT


def signed_balance(
    normal_balance: NormalBalance,
    debit_total: Decimal,
    credit_total: Decimal,
) -> Decimal:
    """
    Apply the sign convention used everywhere a balance is shown.

    Debit-normal: debits - credits. Credit-normal: credits - debits.
    """
    if normal_balance == NormalBalance.DEBIT:
        return debit_total - credit_total
    return credit_total - debit_total


class TransactionType(str, Enum):
    """Business origin of a transaction."""
    JOURNAL_ENTRY = "journal_entry"
    INVOICE = "invoice"
    PAYMENT = "payment"
    DEPOSIT = "deposit"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"


class TransactionStatus(str, Enum):
    """
    Transaction lifecycle.

    CRITICAL: create_transaction produces POSTED directly.
    The only later change is POSTED (or DRAFT) → VOID.
    """
    DRAFT = "draft"
    POSTED = "posted"
    VOID = "void"


class EntityType(str, Enum):
    """Informational counterparty reference on an entry."""
    CUSTOMER = "customer"
    VENDOR = "vendor"
    EMPLOYEE = "employee"


# =============================================================================
# ACCOUNTS
# =============================================================================

class Account(BaseModel):
    """
    A chart-of-accounts entry owned by one tenant.

    normal_balance is derived from type when the account is created.
    Supplying a normal_balance that contradicts the type is an error.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: UUID = Field(default_factory=uuid4)
    company_id: UUID
    code: str = Field(
        ...,
        min_length=1,
        max_length=20,
        description="Account code, unique per tenant (e.g. 1001)"
    )
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    type: AccountType
    normal_balance: NormalBalance
    parent_account_id: Optional[UUID] = Field(
        default=None,
        description="Weak back-reference to a parent account"
    )
    is_active: bool = True
    is_system_account: bool = False
    opening_balance: Decimal = Field(default=ZERO, decimal_places=2)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='before')
    @classmethod
    def derive_normal_balance(cls, data: Any) -> Any:
        """Derive normal_balance from the account type."""
        if not isinstance(data, dict) or data.get("type") is None:
            return data
        derived = normal_balance_for(AccountType(data["type"]))
        given = data.get("normal_balance")
        if given is not None and NormalBalance(given) != derived:
            raise ValueError(
                f"Account type '{AccountType(data['type']).value}' has a "
                f"{derived.value} normal balance, got '{NormalBalance(given).value}'"
            )
        return {**data, "normal_balance": derived}


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single problem found in a candidate journal entry."""

    field: str = Field(
        ...,
        description="Field with the issue (e.g. 'entries', 'debit_amount', 'account_id')"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g. 'too_few_entries', 'unbalanced', 'inactive_account')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
    )
    line_number: Optional[int] = Field(
        default=None,
        ge=1,
        description="1-based entry line this issue refers to; None for aggregate issues"
    )
    suggested_fix: Optional[str] = None


class JournalValidationResult(BaseModel):
    """
    Result of the two-stage journal validation.

    Stage 1: Structure (entry count, one positive side, precision, balance)
    Stage 2: Accounts (exist for the tenant and are active)
    """

    validated_at: datetime = Field(default_factory=datetime.utcnow)
    structure_valid: bool
    accounts_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    debit_total: Decimal = ZERO
    credit_total: Decimal = ZERO

    @property
    def is_valid(self) -> bool:
        return self.structure_valid and self.accounts_valid

    @property
    def difference(self) -> Decimal:
        return self.debit_total - self.credit_total

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]


# =============================================================================
# POSTING REQUEST (boundary model)
# =============================================================================

class JournalLine(BaseModel):
    """
    One candidate line of a journal entry, before posting.

    Used both for manual requests and for AI proposals. Proposals may name
    the account by code instead of id; the code is resolved per tenant
    before the line reaches the poster.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: Optional[UUID] = None
    account_code: Optional[str] = Field(default=None, max_length=20)
    debit_amount: Decimal = ZERO
    credit_amount: Decimal = ZERO
    description: Optional[str] = Field(default=None, max_length=500)
    memo: Optional[str] = None
    entity_id: Optional[UUID] = None
    entity_type: Optional[EntityType] = None

    @field_validator('debit_amount', 'credit_amount', mode='before')
    @classmethod
    def missing_amount_is_zero(cls, v: Any) -> Any:
        if v is None or v == "":
            return ZERO
        return v


class TransactionRequest(BaseModel):
    """
    Input of create_transaction.

    posting_date defaults to transaction_date.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    company_id: UUID
    transaction_date: date
    posting_date: Optional[date] = None
    type: TransactionType = TransactionType.JOURNAL_ENTRY
    description: Optional[str] = Field(default=None, max_length=500)
    reference: Optional[str] = Field(default=None, max_length=100)
    memo: Optional[str] = None
    entries: list[JournalLine] = Field(default_factory=list)
    created_by: Optional[UUID] = None
    is_ai_generated: bool = False
    ai_metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def effective_posting_date(self) -> date:
        return self.posting_date or self.transaction_date


# =============================================================================
# STORED ROWS
# =============================================================================

class Transaction(BaseModel):
    """A transaction header. Immutable once posted except for voiding."""
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    company_id: UUID
    transaction_number: int = Field(..., ge=1)
    transaction_date: date
    posting_date: date
    type: TransactionType
    status: TransactionStatus = TransactionStatus.POSTED
    description: Optional[str] = None
    reference: Optional[str] = None
    memo: Optional[str] = None
    total_amount: Decimal = ZERO
    created_by: Optional[UUID] = None
    is_ai_generated: bool = False
    ai_metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    voided_at: Optional[datetime] = None
    voided_by: Optional[UUID] = None

    def display_number(self, width: int = 6) -> str:
        """Zero-padded transaction number (e.g. 000042)."""
        return str(self.transaction_number).zfill(width)


class TransactionEntry(BaseModel):
    """A posted line. Never edited after posting."""
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    transaction_id: UUID
    company_id: UUID
    line_number: int = Field(..., ge=1)
    account_id: UUID
    debit_amount: Decimal = ZERO
    credit_amount: Decimal = ZERO
    description: Optional[str] = None
    memo: Optional[str] = None
    entity_id: Optional[UUID] = None
    entity_type: Optional[EntityType] = None

    @model_validator(mode='after')
    def exactly_one_side(self) -> 'TransactionEntry':
        """Exactly one of debit/credit is strictly positive, the other zero."""
        debit_side = self.debit_amount > 0 and self.credit_amount == 0
        credit_side = self.credit_amount > 0 and self.debit_amount == 0
        if not (debit_side or credit_side):
            raise ValueError(
                f"Line {self.line_number}: exactly one of debit/credit must be positive"
            )
        return self


class PostedTransaction(BaseModel):
    """A transaction header together with its entries in line order."""

    transaction: Transaction
    entries: list[TransactionEntry]

    @property
    def debit_total(self) -> Decimal:
        return sum((e.debit_amount for e in self.entries), ZERO)

    @property
    def credit_total(self) -> Decimal:
        return sum((e.credit_amount for e in self.entries), ZERO)


class PostingResult(BaseModel):
    """
    Result of create_transaction.

    Either success with the committed transaction and entries,
    or failure with every validation error found. Never both.
    """

    success: bool
    transaction: Optional[Transaction] = None
    entries: list[TransactionEntry] = Field(default_factory=list)
    errors: list[ValidationIssue] = Field(default_factory=list)
    debit_total: Decimal = ZERO
    credit_total: Decimal = ZERO

    @property
    def difference(self) -> Decimal:
        """Debits minus credits (the would-be difference on rejection)."""
        return self.debit_total - self.credit_total


# =============================================================================
# BALANCES & REPORTS
# =============================================================================

class AccountBalance(BaseModel):
    """Balance of one account under its normal-balance sign convention."""

    account_id: UUID
    normal_balance: NormalBalance
    debit_total: Decimal = ZERO
    credit_total: Decimal = ZERO
    balance: Decimal = ZERO
    as_of_date: Optional[date] = Field(
        default=None,
        description="None means unbounded (all posted entries)"
    )


class TrialBalanceRow(BaseModel):
    """
    One trial balance line.

    The balance is shown in the column matching the normal balance,
    or in the opposite column (as a positive number) when negative.
    """

    account: Account
    debit_total: Decimal = ZERO
    credit_total: Decimal = ZERO
    balance: Decimal = ZERO
    debit_total_for_display: Decimal = ZERO
    credit_total_for_display: Decimal = ZERO


class TrialBalanceCheck(BaseModel):
    """Column totals of a trial balance."""

    debit_total: Decimal
    credit_total: Decimal
    is_balanced: bool

    @property
    def difference(self) -> Decimal:
        return self.debit_total - self.credit_total


class TrialBalance(BaseModel):
    """A full trial balance for one tenant as of a date."""

    company_id: UUID
    as_of_date: date
    rows: list[TrialBalanceRow] = Field(default_factory=list)
    debit_total: Decimal = ZERO
    credit_total: Decimal = ZERO
    is_balanced: bool = True
    difference: Decimal = ZERO


# =============================================================================
# GENERAL LEDGER
# =============================================================================

class LedgerFilter(BaseModel):
    """Selection for a general ledger query. company_id is mandatory."""

    company_id: UUID
    account_id: Optional[UUID] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    limit: Optional[int] = Field(default=None, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)

    @model_validator(mode='after')
    def validate_range(self) -> 'LedgerFilter':
        if self.date_from and self.date_to and self.date_to < self.date_from:
            raise ValueError("date_to cannot be before date_from")
        return self


class LedgerLine(BaseModel):
    """A posted entry joined with its transaction header and account."""

    entry: TransactionEntry
    transaction_number: int
    transaction_date: date
    posting_date: date
    reference: Optional[str] = None
    transaction_description: Optional[str] = None
    account_code: str
    account_name: str
    normal_balance: NormalBalance
    running_balance: Optional[Decimal] = Field(
        default=None,
        description="Cumulative balance after this entry; only for single-account queries"
    )

    @property
    def sort_key(self) -> tuple:
        """Display order: posting_date desc, transaction_number desc, line_number asc."""
        return (
            -self.posting_date.toordinal(),
            -self.transaction_number,
            self.entry.line_number,
        )
