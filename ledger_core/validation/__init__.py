"""Validation package."""

from ledger_core.validation.validator import JournalValidator

__all__ = ["JournalValidator"]
