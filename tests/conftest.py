"""Shared fixtures: an in-memory remote store seeded with one account and one envelope."""

from datetime import datetime
from decimal import Decimal

import pytest

from envelope_ledger.audit import AuditLogger
from envelope_ledger.models.ledger import Account, Category, Entity
from envelope_ledger.orchestrator import LedgerService
from envelope_ledger.services.cache import LocalCacheStore
from envelope_ledger.services.connectivity import ConnectivityMonitor
from envelope_ledger.services.storage import InMemoryRemoteStore


OWNER = "user-1"
PERIOD = "2025-03"
WHEN = datetime(2025, 3, 15, 12, 0)


@pytest.fixture
def store():
    return InMemoryRemoteStore()


@pytest.fixture
def cache():
    return LocalCacheStore()


@pytest.fixture
def monitor():
    return ConnectivityMonitor(online=True)


@pytest.fixture
def audit_logger():
    return AuditLogger()


@pytest.fixture
async def account(store):
    return await store.upsert(
        Entity.ACCOUNTS,
        Account(name="Checking", balance=Decimal("100"), owner_id=OWNER),
    )


@pytest.fixture
async def category(store):
    return await store.upsert(
        Entity.CATEGORIES,
        Category(name="Groceries", budget=Decimal("200"), period=PERIOD, owner_id=OWNER),
    )


@pytest.fixture
def service(store, cache, monitor, audit_logger):
    return LedgerService(
        store=store,
        cache=cache,
        monitor=monitor,
        owner_id=OWNER,
        audit_logger=audit_logger,
    )


async def balance_of(store, account_id: int) -> Decimal:
    return (await store.get(Entity.ACCOUNTS, account_id)).balance


async def spent_of(store, category_id: int) -> Decimal:
    return (await store.get(Entity.CATEGORIES, category_id)).spent
