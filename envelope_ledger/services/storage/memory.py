"""
In-Memory Storage Implementation

Keeps every collection in a dict keyed by id. Used by the test suite
and as the fallback backend when Google Sheets isn't configured.

Failure injection (`fail_next`) lets callers simulate a backend that
drops a specific write, which is how partial commits and halted
replays are exercised.
"""

from collections import defaultdict
from typing import Any, Optional

from pydantic import BaseModel

from envelope_ledger.models.ledger import ChangeType, Entity
from envelope_ledger.services.storage.interface import (
    RemoteStore,
    RemoteUnavailableError,
    matches_filters,
)


class InMemoryRemoteStore(RemoteStore):
    """Dict-backed remote store."""

    def __init__(self):
        super().__init__()
        self._records: dict[Entity, dict[int, BaseModel]] = defaultdict(dict)
        self._next_id: dict[Entity, int] = defaultdict(lambda: 1)
        self._failures: dict[tuple[str, Entity], list[Exception]] = defaultdict(list)
        self.available = True
        # (operation, entity, id) for every successful write, in order
        self.write_log: list[tuple[str, Entity, int]] = []

    def fail_next(
        self,
        operation: str,
        entity: Entity,
        error: Optional[Exception] = None,
    ) -> None:
        """Make the next `operation` ("get", "upsert", "delete", "list") on `entity` fail."""
        self._failures[(operation, entity)].append(
            error or RemoteUnavailableError(f"Injected {operation} failure on {entity.value}")
        )

    def _check(self, operation: str, entity: Entity) -> None:
        if not self.available:
            raise RemoteUnavailableError("Remote store is unreachable")
        pending = self._failures.get((operation, entity))
        if pending:
            raise pending.pop(0)

    async def get(self, entity: Entity, record_id: int) -> Optional[BaseModel]:
        self._check("get", entity)
        record = self._records[entity].get(record_id)
        return record.model_copy(deep=True) if record else None

    async def upsert(self, entity: Entity, record: BaseModel) -> BaseModel:
        self._check("upsert", entity)
        stored = record.model_copy(deep=True)
        change = ChangeType.UPDATE
        if stored.id is None or stored.id not in self._records[entity]:
            change = ChangeType.CREATE
            if stored.id is None:
                stored.id = self._next_id[entity]
            self._next_id[entity] = max(self._next_id[entity], stored.id + 1)
        self._records[entity][stored.id] = stored
        self.write_log.append(("upsert", entity, stored.id))
        self._notify(change, entity, stored.id, stored.owner_id)
        return stored.model_copy(deep=True)

    async def delete(self, entity: Entity, record_id: int) -> bool:
        self._check("delete", entity)
        record = self._records[entity].pop(record_id, None)
        if record is None:
            return False
        self.write_log.append(("delete", entity, record_id))
        self._notify(ChangeType.DELETE, entity, record_id, record.owner_id)
        return True

    async def list(
        self,
        entity: Entity,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[BaseModel]:
        self._check("list", entity)
        records = [
            record.model_copy(deep=True)
            for record in self._records[entity].values()
            if matches_filters(record, filters)
        ]
        if order_by:
            records.sort(key=lambda r: getattr(r, order_by), reverse=descending)
        if limit is not None:
            records = records[:limit]
        return records
