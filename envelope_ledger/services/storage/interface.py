"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for the remote store.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the ledger engine decoupled from the storage implementation

The interface is intentionally generic - get / upsert / delete / list
over a fixed set of entity collections. The store offers NO multi-record
transaction: each call commits (or fails) on its own.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Optional

from pydantic import BaseModel

from envelope_ledger.models.audit import AuditEvent
from envelope_ledger.models.ledger import ChangeNotification, ChangeType, Entity


class ChangeSubscription:
    """
    One subscriber's view of a change feed.

    Iterate with `async for`. Notifications are buffered until read.
    """

    def __init__(self, feed: "ChangeFeed", entity: Entity, owner_id: str):
        self.entity = entity
        self.owner_id = owner_id
        self._feed = feed
        self._queue: asyncio.Queue[Optional[ChangeNotification]] = asyncio.Queue()
        self._closed = False

    def matches(self, notification: ChangeNotification) -> bool:
        return (
            notification.entity == self.entity
            and notification.owner_id == self.owner_id
        )

    def deliver(self, notification: Optional[ChangeNotification]) -> None:
        self._queue.put_nowait(notification)

    def close(self) -> None:
        """Stop iteration once buffered notifications are drained."""
        if not self._closed:
            self._closed = True
            self._feed.remove(self)
            self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[ChangeNotification]:
        return self

    async def __anext__(self) -> ChangeNotification:
        notification = await self._queue.get()
        if notification is None:
            raise StopAsyncIteration
        return notification


class ChangeFeed:
    """Fan-out of change notifications to subscriptions."""

    def __init__(self):
        self._subscriptions: list[ChangeSubscription] = []

    def subscribe(self, entity: Entity, owner_id: str) -> ChangeSubscription:
        subscription = ChangeSubscription(self, entity, owner_id)
        self._subscriptions.append(subscription)
        return subscription

    def remove(self, subscription: ChangeSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def publish(self, notification: ChangeNotification) -> None:
        for subscription in list(self._subscriptions):
            if subscription.matches(notification):
                subscription.deliver(notification)


class RemoteStore(ABC):
    """
    Abstract interface for the authoritative record store.

    Any backend (Google Sheets, PostgreSQL, in-memory, etc.)
    must implement these methods. Records are the pydantic models
    registered in ENTITY_MODELS.
    """

    def __init__(self):
        self._feed = ChangeFeed()

    @abstractmethod
    async def get(self, entity: Entity, record_id: int) -> Optional[BaseModel]:
        """
        Retrieve a record by id.

        Returns:
            The record if found, None otherwise

        Raises:
            RemoteUnavailableError: If the backend can't be reached
        """
        pass

    @abstractmethod
    async def upsert(self, entity: Entity, record: BaseModel) -> BaseModel:
        """
        Insert a record, or replace the record with the same id.

        Records without an id are inserted and get a new id.

        Returns:
            The stored record (with its id)

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, entity: Entity, record_id: int) -> bool:
        """
        Delete a record by id.

        Returns:
            True if a record was deleted
        """
        pass

    @abstractmethod
    async def list(
        self,
        entity: Entity,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[BaseModel]:
        """
        List records matching all equality filters.

        Args:
            entity: Collection to read
            filters: Field name → required value
            order_by: Field to sort on (store order if None)
            descending: Reverse the sort
            limit: Maximum number of results

        Returns:
            List of matching records
        """
        pass

    def subscribe(self, entity: Entity, owner_id: str) -> ChangeSubscription:
        """
        Subscribe to change notifications for one owner's records.

        Notifications only say what changed; callers re-fetch by id.
        """
        return self._feed.subscribe(entity, owner_id)

    def _notify(self, change: ChangeType, entity: Entity, record_id: int, owner_id: str) -> None:
        self._feed.publish(
            ChangeNotification(
                change=change,
                entity=entity,
                id=record_id,
                owner_id=owner_id,
            )
        )


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


def matches_filters(record: BaseModel, filters: Optional[dict[str, Any]]) -> bool:
    """Equality match of a record against a filter mapping."""
    if not filters:
        return True
    for field, expected in filters.items():
        if getattr(record, field, None) != expected:
            return False
    return True


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class RemoteUnavailableError(StorageError):
    """Could not reach the storage backend."""
    pass
