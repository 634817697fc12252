"""
Storage Services Package

Provides the abstract ledger store plus in-memory and SQLAlchemy
implementations, and audit sinks (in-memory and Google Sheets).
"""

from ledger_core.services.storage.interface import (
    AuditStorageInterface,
    LedgerStoreInterface,
    StorageConnectionError,
    StorageError,
)
from ledger_core.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStore,
)
from ledger_core.services.storage.sql import SQLLedgerStore
from ledger_core.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStoreInterface",
    # Exceptions
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStore",
    # SQL implementation
    "SQLLedgerStore",
    # Google Sheets audit export
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
]
