"""
Audit Models for Envelope Ledger

Every ledger-affecting action is recorded as an audit event.
This provides:
1. Traceability of every balance change
2. A record of partial commits that need manual attention
3. Visibility into offline queueing and replay

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Ledger writes
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_DELETED = "transaction_deleted"
    PARTIAL_COMMIT = "partial_commit"

    # Offline queue
    TRANSACTION_QUEUED = "transaction_queued"
    TRANSACTION_DISCARDED = "transaction_discarded"
    REPLAY_STARTED = "replay_started"
    REPLAY_COMPLETED = "replay_completed"
    REPLAY_HALTED = "replay_halted"

    # Summaries
    SUMMARY_COMPUTED = "summary_computed"

    # System events
    CONNECTIVITY_CHANGED = "connectivity_changed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Ledger entities use integer ids, so `entity_id` is an int here.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'summary')"
    )
    entity_id: Optional[int] = None

    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one replay run)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row for the audit worksheet.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id is not None else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(txn, correlation_id)
        event = AuditEventBuilder.replay_halted(local_id, error, correlation_id)
    """

    @staticmethod
    def transaction_created(
        transaction_id: int,
        kind: str,
        amount: Decimal,
        account_id: int,
        category_id: Optional[int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Recorded {kind} of {amount}",
            details={
                "kind": kind,
                "amount": str(amount),
                "account_id": account_id,
                "category_id": category_id,
            },
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: int,
        kind: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Reversed and deleted {kind} of {amount}",
            details={"kind": kind, "amount": str(amount)},
        )

    @staticmethod
    def partial_commit(
        operation: str,
        completed: list[str],
        failed: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTIAL_COMMIT,
            severity=AuditSeverity.ERROR,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"{operation} partially committed: {failed} failed",
            details={
                "operation": operation,
                "completed": completed,
                "failed": failed,
            },
            error_message=error_message,
        )

    @staticmethod
    def transaction_queued(
        local_id: int,
        kind: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_QUEUED,
            entity_type="pending_transaction",
            entity_id=local_id,
            correlation_id=correlation_id,
            description=f"Queued {kind} of {amount} while offline",
            details={"kind": kind, "amount": str(amount)},
        )

    @staticmethod
    def transaction_discarded(
        local_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DISCARDED,
            severity=AuditSeverity.WARNING,
            entity_type="pending_transaction",
            entity_id=local_id,
            correlation_id=correlation_id,
            description="Pending transaction discarded by user",
        )

    @staticmethod
    def replay_started(pending_count: int, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPLAY_STARTED,
            correlation_id=correlation_id,
            description=f"Replaying {pending_count} pending transactions",
            details={"pending_count": pending_count},
        )

    @staticmethod
    def replay_completed(committed: list[int], correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPLAY_COMPLETED,
            correlation_id=correlation_id,
            description=f"Replay committed {len(committed)} transactions",
            details={"committed_ids": committed},
        )

    @staticmethod
    def replay_halted(
        local_id: int,
        error_message: str,
        remaining: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPLAY_HALTED,
            severity=AuditSeverity.WARNING,
            entity_type="pending_transaction",
            entity_id=local_id,
            correlation_id=correlation_id,
            description=f"Replay halted with {remaining} transactions still pending",
            details={"remaining": remaining},
            error_message=error_message,
        )

    @staticmethod
    def summary_computed(
        summary_id: Optional[int],
        period: str,
        transaction_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUMMARY_COMPUTED,
            entity_type="summary",
            entity_id=summary_id,
            correlation_id=correlation_id,
            description=f"Monthly summary computed for {period}",
            details={"period": period, "transaction_count": transaction_count},
        )

    @staticmethod
    def connectivity_changed(online: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONNECTIVITY_CHANGED,
            description="Connection restored" if online else "Connection lost",
            details={"online": online},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
