"""
Audit Logger

DESIGN DECISION: Every ledger-affecting action is logged.
This provides:
1. Traceability of balance changes
2. A trail for partial commits that need manual repair
3. Visibility into the offline queue and replays

The audit logger:
- Is async to not block main flow
- Gracefully handles storage failures (doesn't crash the ledger if logging fails)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from envelope_ledger.models.audit import AuditEvent, AuditEventBuilder
from envelope_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("envelope_ledger.audit")
        # Every event logged through this instance, oldest first
        self.events: list[AuditEvent] = []

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        self.events.append(event)
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_created(
        self,
        transaction_id: int,
        kind: str,
        amount: Decimal,
        account_id: int,
        category_id: Optional[int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_created(
            transaction_id=transaction_id,
            kind=kind,
            amount=amount,
            account_id=account_id,
            category_id=category_id,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(
        self,
        transaction_id: int,
        kind: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            kind=kind,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_partial_commit(
        self,
        operation: str,
        completed: list[str],
        failed: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a batch where some writes landed and one failed."""
        await self.log(AuditEventBuilder.partial_commit(
            operation=operation,
            completed=completed,
            failed=failed,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_transaction_queued(
        self,
        local_id: int,
        kind: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_queued(
            local_id=local_id,
            kind=kind,
            amount=amount,
            correlation_id=correlation_id,
        ))

    async def log_transaction_discarded(self, local_id: int) -> None:
        await self.log(AuditEventBuilder.transaction_discarded(local_id=local_id))

    async def log_replay_started(self, pending_count: int, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.replay_started(pending_count, correlation_id))

    async def log_replay_completed(self, committed: list[int], correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.replay_completed(committed, correlation_id))

    async def log_replay_halted(
        self,
        local_id: int,
        error_message: str,
        remaining: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.replay_halted(
            local_id=local_id,
            error_message=error_message,
            remaining=remaining,
            correlation_id=correlation_id,
        ))

    async def log_summary_computed(
        self,
        summary_id: Optional[int],
        period: str,
        transaction_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.summary_computed(
            summary_id=summary_id,
            period=period,
            transaction_count=transaction_count,
            correlation_id=correlation_id,
        ))

    async def log_connectivity_changed(self, online: bool) -> None:
        await self.log(AuditEventBuilder.connectivity_changed(online))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a user action or a replay run.
    Pass it through all subsequent operations.
    """
    return uuid4()
