"""
Ledger Core - Source Package

The accounting core of a multi-tenant bookkeeping application.
It accepts candidate journal entries (entered manually or proposed by
an AI analysis step), records them under the double-entry invariant,
and answers balance, trial balance and general ledger queries.

DESIGN PRINCIPLES:
1. AI suggests → Human reviews → Ledger validates
2. Reject, never auto-correct, an unbalanced entry
3. Posted entries are never edited; transactions are only voided
4. Every tenant boundary is a required argument
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Ledger Core Team"
