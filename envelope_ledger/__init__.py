"""
Envelope Ledger - Source Package

Keeps bank account balances, envelope spending and transaction records
consistent, online and offline.

DESIGN PRINCIPLES:
1. Aggregates change only as a side effect of a transaction
2. Fail visibly: partial commits are reported, never hidden
3. Offline writes are queued in order and replayed in order
4. Summaries are derived, never a source of truth
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Envelope Ledger Team"
