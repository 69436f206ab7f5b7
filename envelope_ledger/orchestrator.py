"""
Main Orchestrator for Envelope Ledger

This module ties together all the components and defines the flows a
UI calls into:
1. Record a transaction (online commit, or offline queue)
2. Delete a transaction (online only)
3. Read transaction history (remote with read-through cache, or cache)
4. Monthly summaries

DESIGN DECISION: The orchestrator enforces the boundaries:
- The UI never talks to the remote store or the cache directly
- Writes that can't reach the store are queued, never dropped
- Deletes are never queued
"""

import asyncio
from datetime import date, datetime
from typing import Awaitable, Callable, Optional
from uuid import UUID

import structlog

from envelope_ledger.audit import AuditLogger, create_correlation_id
from envelope_ledger.config import get_settings
from envelope_ledger.errors import RemoteUnavailableError
from envelope_ledger.ledger import (
    ChangeListener,
    LedgerEngine,
    MonthlySummarizer,
    OfflineQueue,
    Reconciler,
    ReplayReport,
)
from envelope_ledger.models.ledger import (
    Entity,
    MonthlySummary,
    Transaction,
    TransactionKind,
)
from envelope_ledger.services.cache import LocalCacheStore
from envelope_ledger.services.connectivity import ConnectivityMonitor, ConnectivityState
from envelope_ledger.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    InMemoryRemoteStore,
    RemoteStore,
)


logger = structlog.get_logger(__name__)


class LedgerService:
    """
    Facade over the engine, the offline queue and the summarizer.

    Flow for a new transaction:
    1. Online → engine commits account, category, transaction
    2. Offline (or store unreachable before any write) → queued locally
    3. Reconnect → reconciler replays the queue in order
    """

    def __init__(
        self,
        store: RemoteStore,
        cache: LocalCacheStore,
        monitor: ConnectivityMonitor,
        owner_id: str,
        audit_logger: Optional[AuditLogger] = None,
        summary_history_limit: int = 12,
        probe_interval: float = 15.0,
    ):
        self._store = store
        self._cache = cache
        self._monitor = monitor
        self._owner_id = owner_id
        self._audit_logger = audit_logger
        self._probe_interval = probe_interval

        self.engine = LedgerEngine(store, monitor, owner_id, cache, audit_logger)
        self.queue = OfflineQueue(cache, owner_id, audit_logger)
        self.reconciler = Reconciler(self.engine, self.queue, monitor, audit_logger)
        self.summarizer = MonthlySummarizer(
            store, owner_id, audit_logger, history_limit=summary_history_limit
        )
        self.change_listener = ChangeListener(store, cache, owner_id)

    @property
    def monitor(self) -> ConnectivityMonitor:
        return self._monitor

    def start(self) -> None:
        """
        Hook replay to reconnection and start following remote changes.

        Must be called from a running event loop.
        """
        self._monitor.subscribe(ConnectivityState.ONLINE, self._audit_online)
        self._monitor.subscribe(ConnectivityState.OFFLINE, self._audit_offline)
        self.reconciler.start()
        self.change_listener.start()

    async def stop(self) -> None:
        self._monitor.unsubscribe(ConnectivityState.ONLINE, self._audit_online)
        self._monitor.unsubscribe(ConnectivityState.OFFLINE, self._audit_offline)
        self.reconciler.stop()
        await self.change_listener.stop()
        await self.reconciler.wait()

    async def _audit_online(self) -> None:
        if self._audit_logger:
            await self._audit_logger.log_connectivity_changed(True)

    async def _audit_offline(self) -> None:
        if self._audit_logger:
            await self._audit_logger.log_connectivity_changed(False)

    async def record_transaction(
        self,
        account_id: int,
        kind: TransactionKind | str,
        amount,
        description: str = "",
        category_id: Optional[int] = None,
        timestamp: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Record a transaction, queueing it if the store can't be reached.

        Earlier queued writes go first: while online, the queue is
        replayed before committing, and if anything is still pending
        afterwards the new write is queued behind it.

        Returns:
            The committed transaction, or the pending record if queued
        """
        correlation_id = correlation_id or create_correlation_id()
        timestamp = timestamp or datetime.utcnow()
        fields = dict(
            account_id=account_id,
            kind=kind,
            amount=amount,
            description=description,
            category_id=category_id,
            timestamp=timestamp,
        )

        if self._monitor.is_online and len(self.queue):
            report = await self.reconciler.replay()
            if isinstance(report.error, RemoteUnavailableError):
                await self._monitor.set_offline()
        if len(self.queue):
            logger.info("queued_behind_pending", pending=len(self.queue))
            return await self.queue.enqueue(**fields)

        try:
            return await self.engine.create_transaction(
                correlation_id=correlation_id, **fields
            )
        except RemoteUnavailableError as e:
            logger.info("falling_back_to_queue", reason=str(e))
            record = await self.queue.enqueue(**fields)
            # The next online transition replays what was just queued
            await self._monitor.set_offline()
            return record

    async def delete_transaction(self, transaction_id: int) -> Transaction:
        return await self.engine.delete_transaction(transaction_id)

    async def discard_pending(self, local_id: int) -> Transaction:
        return await self.queue.discard(local_id)

    async def list_transactions(self, period: Optional[str] = None) -> list[Transaction]:
        """
        Transaction history, newest first, pending records included.

        Online reads refresh the local cache; offline reads come
        entirely from it.
        """
        if self._monitor.is_online:
            try:
                filters = {"owner_id": self._owner_id}
                remote = await self._store.list(Entity.TRANSACTIONS, filters=filters)
                self._cache.bulk_put(remote)
                records = [t for t in remote if period is None or t.period == period]
                records.extend(
                    t for t in self.queue.pending() if period is None or t.period == period
                )
                return sorted(records, key=lambda t: t.timestamp, reverse=True)
            except RemoteUnavailableError as e:
                logger.warning("serving_from_cache", reason=str(e))

        records = [t for t in self._cache.get_all(period) if t.owner_id == self._owner_id]
        return sorted(records, key=lambda t: t.timestamp, reverse=True)

    async def go_online(self) -> Optional[ReplayReport]:
        """Mark the connection as up and wait for the triggered replay."""
        await self._monitor.set_online()
        return await self.reconciler.wait()

    async def go_offline(self) -> None:
        await self._monitor.set_offline()

    async def watch_connectivity(
        self,
        probe: Callable[[], Awaitable[bool]],
        stop: Optional[asyncio.Event] = None,
    ) -> None:
        """Drive the monitor from a reachability probe until `stop` is set."""
        await self._monitor.watch(probe, self._probe_interval, stop)

    async def monthly_summary(self, period: str) -> MonthlySummary:
        return await self.summarizer.summarize(period)

    async def summaries(self, limit: Optional[int] = None) -> list[MonthlySummary]:
        return await self.summarizer.list_summaries(limit)

    async def close_previous_period(self, today: Optional[date] = None) -> Optional[MonthlySummary]:
        """
        First-day-of-month check: store last month's summary if missing.

        Returns None when there was nothing to do.
        """
        return await self.summarizer.ensure_previous_period(today)


def create_app_components(
    use_remote: bool = True,
    online: bool = True,
) -> tuple[LedgerService, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_remote: Whether to initialize Google Sheets storage.
                    Set to False to run against the in-memory store.
        online: Initial connectivity state

    Returns:
        (ledger_service, sheets_client)
    """
    settings = get_settings()
    ledger_settings = settings.ledger

    sheets_client = None
    store: RemoteStore
    audit_logger: AuditLogger

    if use_remote:
        try:
            sheets_client = GoogleSheetsClient(settings.google_sheets)
            store = GoogleSheetsRemoteStore(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("remote_store_not_configured", error=str(e))
            sheets_client = None
            store = InMemoryRemoteStore()
            audit_logger = AuditLogger()  # Local-only logging
    else:
        store = InMemoryRemoteStore()
        audit_logger = AuditLogger()

    service = LedgerService(
        store=store,
        cache=LocalCacheStore(ledger_settings.cache_path),
        monitor=ConnectivityMonitor(online=online),
        owner_id=ledger_settings.owner_id,
        audit_logger=audit_logger,
        summary_history_limit=ledger_settings.summary_history_limit,
        probe_interval=ledger_settings.connectivity_probe_interval_seconds,
    )
    return service, sheets_client
