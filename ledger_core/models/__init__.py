"""
Data Models Package

This package contains all Pydantic models used by the ledger core.
All data flowing in and out of the core must conform to these schemas.
"""

from ledger_core.models.ledger import (
    CENT,
    ZERO,
    Account,
    AccountBalance,
    AccountType,
    EntityType,
    JournalLine,
    JournalValidationResult,
    LedgerFilter,
    LedgerLine,
    NormalBalance,
    PostedTransaction,
    PostingResult,
    Transaction,
    TransactionEntry,
    TransactionRequest,
    TransactionStatus,
    TransactionType,
    TrialBalance,
    TrialBalanceCheck,
    TrialBalanceRow,
    ValidationIssue,
    normal_balance_for,
    signed_balance,
    to_money,
)
from ledger_core.models.suggestion import (
    AgentPerformance,
    AgentType,
    AIAgent,
    AISuggestion,
    AnalysisOutcome,
    AnalysisRequest,
    ProviderProposal,
    SuggestionStatus,
    compute_accuracy_rate,
)
from ledger_core.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "CENT",
    "ZERO",
    "Account",
    "AccountBalance",
    "AccountType",
    "EntityType",
    "JournalLine",
    "JournalValidationResult",
    "LedgerFilter",
    "LedgerLine",
    "NormalBalance",
    "PostedTransaction",
    "PostingResult",
    "Transaction",
    "TransactionEntry",
    "TransactionRequest",
    "TransactionStatus",
    "TransactionType",
    "TrialBalance",
    "TrialBalanceCheck",
    "TrialBalanceRow",
    "ValidationIssue",
    "normal_balance_for",
    "signed_balance",
    "to_money",
    # Suggestion models
    "AgentPerformance",
    "AgentType",
    "AIAgent",
    "AISuggestion",
    "AnalysisOutcome",
    "AnalysisRequest",
    "ProviderProposal",
    "SuggestionStatus",
    "compute_accuracy_rate",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
