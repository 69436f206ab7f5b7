"""
Data Models Package

This package contains all Pydantic models used in Envelope Ledger.
All records exchanged with the stores must conform to these schemas.
"""

from envelope_ledger.models.ledger import (
    ENTITY_MODELS,
    UNCATEGORIZED_LABEL,
    Account,
    Category,
    ChangeNotification,
    ChangeType,
    Entity,
    MonthlySummary,
    Transaction,
    TransactionKind,
)
from envelope_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "ENTITY_MODELS",
    "UNCATEGORIZED_LABEL",
    "Account",
    "Category",
    "ChangeNotification",
    "ChangeType",
    "Entity",
    "MonthlySummary",
    "Transaction",
    "TransactionKind",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
