"""
Ledger Package

The consistency core: applying and reversing transaction effects,
the offline queue and its replay, and monthly summaries.
"""

from envelope_ledger.ledger.engine import LedgerEngine, apply_effect, reverse_effect
from envelope_ledger.ledger.summary import MonthlySummarizer, compute_summary
from envelope_ledger.ledger.sync import (
    ChangeListener,
    OfflineQueue,
    Reconciler,
    ReplayReport,
)

__all__ = [
    "ChangeListener",
    "LedgerEngine",
    "MonthlySummarizer",
    "OfflineQueue",
    "Reconciler",
    "ReplayReport",
    "apply_effect",
    "compute_summary",
    "reverse_effect",
]
