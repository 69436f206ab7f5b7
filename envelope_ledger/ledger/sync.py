"""
Offline Queue & Reconciliation

Transaction lifecycle:

    Draft -> Pending (in the local cache, pending=True) -> Committed

A pending write that fails during replay stays Pending and is retried on
the next reconnection, indefinitely. The only way to Abandoned is an
explicit discard().

Replay rules:
1. Pending records are replayed one at a time, in the order queued
2. The first failure stops the replay; later records are not attempted
3. Only one replay runs at a time; online events during a replay are coalesced
4. Going offline mid-replay stops it after the current item
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import structlog

from envelope_ledger.audit import AuditLogger, create_correlation_id
from envelope_ledger.errors import NotFoundError, RemoteUnavailableError
from envelope_ledger.ledger.engine import LedgerEngine
from envelope_ledger.models.ledger import (
    ChangeNotification,
    ChangeType,
    Entity,
    Transaction,
    TransactionKind,
)
from envelope_ledger.services.cache import LocalCacheStore
from envelope_ledger.services.connectivity import ConnectivityMonitor, ConnectivityState
from envelope_ledger.services.storage import RemoteStore
from envelope_ledger.validation import TransactionValidator


logger = structlog.get_logger(__name__)


class OfflineQueue:
    """Pending transactions held in the local cache."""

    def __init__(
        self,
        cache: LocalCacheStore,
        owner_id: str,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._cache = cache
        self._owner_id = owner_id
        self._validator = TransactionValidator(owner_id)
        self._audit_logger = audit_logger

    async def enqueue(
        self,
        account_id: int,
        kind: TransactionKind | str,
        amount,
        description: str = "",
        category_id: Optional[int] = None,
        timestamp: Optional[datetime] = None,
    ) -> Transaction:
        """
        Queue a transaction for later replay.

        Account and category can't be checked offline; that happens
        when the record is replayed.

        Raises:
            InvalidAmountError: amount <= 0
        """
        record = Transaction(
            id=self._cache.next_local_id(),
            amount=self._validator.validate_amount(amount),
            kind=self._validator.validate_kind(kind),
            description=description,
            timestamp=timestamp or datetime.utcnow(),
            account_id=account_id,
            category_id=category_id,
            owner_id=self._owner_id,
            pending=True,
        )
        self._cache.put(record)

        logger.info(
            "transaction_queued",
            local_id=record.id,
            kind=record.kind.value,
            amount=str(record.amount),
        )
        if self._audit_logger:
            await self._audit_logger.log_transaction_queued(
                local_id=record.id,
                kind=record.kind.value,
                amount=record.amount,
            )
        return record

    def pending(self) -> list[Transaction]:
        """This owner's pending records in the order they were queued."""
        return [t for t in self._cache.pending() if t.owner_id == self._owner_id]

    def __len__(self) -> int:
        return len(self.pending())

    def mark_committed(self, local_id: int) -> None:
        """Drop a pending record once its write is durable remotely."""
        self._cache.delete(local_id)

    async def discard(self, local_id: int) -> Transaction:
        """
        Abandon a pending record.

        Raises:
            NotFoundError: If no pending record has that id
        """
        record = self._cache.get(local_id)
        if record is None or not record.pending or record.owner_id != self._owner_id:
            raise NotFoundError(f"Pending transaction not found: {local_id}")
        self._cache.delete(local_id)
        logger.warning("transaction_discarded", local_id=local_id)
        if self._audit_logger:
            await self._audit_logger.log_transaction_discarded(local_id)
        return record


@dataclass
class ReplayReport:
    """Outcome of one replay run."""

    committed: list[int] = field(default_factory=list)
    remaining: int = 0
    halted_on: Optional[int] = None
    error: Optional[Exception] = None

    @property
    def completed(self) -> bool:
        return self.error is None and self.remaining == 0


class Reconciler:
    """
    Replays the offline queue against the remote store.

    start() hooks it to the monitor's online events.
    """

    def __init__(
        self,
        engine: LedgerEngine,
        queue: OfflineQueue,
        monitor: ConnectivityMonitor,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._engine = engine
        self._queue = queue
        self._monitor = monitor
        self._audit_logger = audit_logger
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._monitor.subscribe(ConnectivityState.ONLINE, self._handle_online)

    def stop(self) -> None:
        self._monitor.unsubscribe(ConnectivityState.ONLINE, self._handle_online)

    async def _handle_online(self) -> None:
        self.on_online()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def on_online(self) -> asyncio.Task:
        """
        Start a replay, or return the one already in flight.

        Must be called from a running event loop.
        """
        if self.running:
            logger.debug("replay_coalesced")
            return self._task
        self._task = asyncio.get_running_loop().create_task(self._replay())
        return self._task

    async def replay(self) -> ReplayReport:
        """Run (or join) a replay and wait for its report."""
        return await self.on_online()

    async def wait(self) -> Optional[ReplayReport]:
        """Wait for the current or last replay, if any."""
        if self._task is None:
            return None
        return await self._task

    async def _replay(self) -> ReplayReport:
        report = ReplayReport()
        pending = self._queue.pending()
        if not pending:
            return report

        correlation_id = create_correlation_id()
        logger.info("replay_started", pending=len(pending))
        if self._audit_logger:
            await self._audit_logger.log_replay_started(len(pending), correlation_id)

        for index, record in enumerate(pending):
            try:
                if not self._monitor.is_online:
                    raise RemoteUnavailableError("Went offline during replay")
                committed = await self._engine.create_transaction(
                    account_id=record.account_id,
                    kind=record.kind,
                    amount=record.amount,
                    description=record.description,
                    category_id=record.category_id,
                    timestamp=record.timestamp,
                    correlation_id=correlation_id,
                )
            except Exception as e:
                # Stop here; this record and everything after it stays pending
                report.remaining = len(pending) - index
                report.halted_on = record.id
                report.error = e
                logger.warning(
                    "replay_halted",
                    local_id=record.id,
                    remaining=report.remaining,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                if self._audit_logger:
                    await self._audit_logger.log_replay_halted(
                        local_id=record.id,
                        error_message=str(e),
                        remaining=report.remaining,
                        correlation_id=correlation_id,
                    )
                return report

            self._queue.mark_committed(record.id)
            report.committed.append(committed.id)

        logger.info("replay_completed", committed=len(report.committed))
        if self._audit_logger:
            await self._audit_logger.log_replay_completed(report.committed, correlation_id)
        return report


class ChangeListener:
    """
    Keeps the local cache in step with remote transaction changes.

    Each notification is applied by id (re-fetch one record, or drop
    it) rather than re-fetching the whole history.
    """

    def __init__(self, store: RemoteStore, cache: LocalCacheStore, owner_id: str):
        self._store = store
        self._cache = cache
        self._owner_id = owner_id
        self._subscription = None
        self._task: Optional[asyncio.Task] = None

    async def apply(self, notification: ChangeNotification) -> None:
        if notification.entity != Entity.TRANSACTIONS:
            return
        if notification.change == ChangeType.DELETE:
            self._cache.delete(notification.id)
            return
        record = await self._store.get(Entity.TRANSACTIONS, notification.id)
        if record is None:
            self._cache.delete(notification.id)
        else:
            self._cache.put(record)

    async def run(self) -> None:
        """Consume notifications until stop() is called."""
        async for notification in self._subscription:
            try:
                await self.apply(notification)
            except RemoteUnavailableError as e:
                # The next read-through list refreshes the cache
                logger.warning("change_apply_failed", id=notification.id, error=str(e))

    def start(self) -> asyncio.Task:
        self._subscription = self._store.subscribe(Entity.TRANSACTIONS, self._owner_id)
        self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
        if self._task is not None:
            await self._task
