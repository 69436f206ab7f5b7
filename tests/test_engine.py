"""
Tests for the ledger consistency engine.

All tests run against the in-memory store; failures are injected with
InMemoryRemoteStore.fail_next.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from conftest import OWNER, WHEN, balance_of, spent_of
from envelope_ledger.errors import (
    InvalidAmountError,
    NotFoundError,
    OfflineDeleteNotSupportedError,
    PartialCommitError,
    RemoteUnavailableError,
    StorageError,
    ValidationError,
)
from envelope_ledger.ledger import LedgerEngine, apply_effect, reverse_effect
from envelope_ledger.models.audit import AuditEventType
from envelope_ledger.models.ledger import Account, Category, Entity, TransactionKind


@pytest.fixture
def engine(store, cache, monitor, audit_logger):
    return LedgerEngine(store, monitor, OWNER, cache, audit_logger)


class TestEffects:
    """Tests for the pure apply / reverse helpers."""

    def test_expense_subtracts_and_adds_to_spent(self):
        assert apply_effect(Decimal("100"), Decimal("5"), TransactionKind.EXPENSE, Decimal("30")) == (
            Decimal("70"),
            Decimal("35"),
        )

    def test_income_adds_and_leaves_spent(self):
        assert apply_effect(Decimal("100"), None, TransactionKind.INCOME, Decimal("30")) == (
            Decimal("130"),
            None,
        )

    def test_reverse_undoes_apply(self):
        for kind in TransactionKind:
            applied = apply_effect(Decimal("12.50"), Decimal("3"), kind, Decimal("7.25"))
            assert reverse_effect(*applied, kind, Decimal("7.25")) == (Decimal("12.50"), Decimal("3"))


class TestCreateTransaction:
    """Tests for LedgerEngine.create_transaction."""

    async def test_expense_updates_balance_and_spent(self, engine, store, account, category):
        txn = await engine.create_transaction(
            account_id=account.id,
            kind="expense",
            amount="30",
            description="Market",
            category_id=category.id,
            timestamp=WHEN,
        )
        assert txn.id is not None
        assert txn.pending is False
        assert await balance_of(store, account.id) == Decimal("70")
        assert await spent_of(store, category.id) == Decimal("30")
        assert await store.get(Entity.TRANSACTIONS, txn.id) == txn

    async def test_income_ignores_category(self, engine, store, account, category):
        txn = await engine.create_transaction(
            account_id=account.id,
            kind=TransactionKind.INCOME,
            amount=Decimal("50"),
            category_id=category.id,
            timestamp=WHEN,
        )
        assert txn.category_id is None
        assert await balance_of(store, account.id) == Decimal("150")
        assert await spent_of(store, category.id) == Decimal("0")

    async def test_balance_may_go_negative(self, engine, store, account):
        await engine.create_transaction(account.id, "expense", "250", timestamp=WHEN)
        assert await balance_of(store, account.id) == Decimal("-150")

    async def test_writes_aggregates_before_transaction(self, engine, store, account, category):
        store.write_log.clear()
        await engine.create_transaction(
            account.id, "expense", "10", category_id=category.id, timestamp=WHEN
        )
        assert [entity for _, entity, _ in store.write_log] == [
            Entity.ACCOUNTS,
            Entity.CATEGORIES,
            Entity.TRANSACTIONS,
        ]

    @pytest.mark.parametrize("amount", ["0", "-5", "abc", None, "NaN"])
    async def test_rejects_bad_amount(self, engine, store, account, amount):
        with pytest.raises(InvalidAmountError):
            await engine.create_transaction(account.id, "expense", amount, timestamp=WHEN)
        assert store.write_log == [("upsert", Entity.ACCOUNTS, account.id)]

    async def test_invalid_amount_is_a_validation_error(self, engine, account):
        with pytest.raises(ValidationError):
            await engine.create_transaction(account.id, "expense", "0", timestamp=WHEN)

    async def test_rejects_unknown_kind(self, engine, account):
        with pytest.raises(ValidationError, match="Unknown transaction kind"):
            await engine.create_transaction(account.id, "transfer", "5", timestamp=WHEN)

    async def test_missing_account(self, engine):
        with pytest.raises(NotFoundError):
            await engine.create_transaction(999, "expense", "5", timestamp=WHEN)

    async def test_foreign_account_is_not_found(self, engine, store):
        foreign = await store.upsert(
            Entity.ACCOUNTS, Account(name="Theirs", balance=Decimal("10"), owner_id="someone-else")
        )
        with pytest.raises(NotFoundError):
            await engine.create_transaction(foreign.id, "expense", "5", timestamp=WHEN)
        assert await balance_of(store, foreign.id) == Decimal("10")

    async def test_missing_category(self, engine, store, account):
        with pytest.raises(NotFoundError):
            await engine.create_transaction(
                account.id, "expense", "5", category_id=42, timestamp=WHEN
            )
        assert await balance_of(store, account.id) == Decimal("100")

    async def test_category_from_another_period(self, engine, store, account):
        april = await store.upsert(
            Entity.CATEGORIES, Category(name="Fuel", period="2025-04", owner_id=OWNER)
        )
        with pytest.raises(ValidationError, match="2025-04"):
            await engine.create_transaction(
                account.id, "expense", "5", category_id=april.id, timestamp=WHEN
            )
        assert await balance_of(store, account.id) == Decimal("100")

    async def test_offline_does_not_contact_store(self, engine, store, monitor, account):
        await monitor.set_offline()
        store.available = False  # any call would raise anyway; make sure none happens
        store.write_log.clear()
        with pytest.raises(RemoteUnavailableError, match="Offline"):
            await engine.create_transaction(account.id, "expense", "5", timestamp=WHEN)
        assert store.write_log == []

    async def test_first_write_failure_propagates_unchanged(self, engine, store, account):
        store.fail_next("upsert", Entity.ACCOUNTS)
        with pytest.raises(RemoteUnavailableError):
            await engine.create_transaction(account.id, "expense", "5", timestamp=WHEN)
        assert await balance_of(store, account.id) == Decimal("100")

    async def test_partial_commit_when_transaction_insert_fails(
        self, engine, store, account, category, audit_logger
    ):
        store.fail_next("upsert", Entity.TRANSACTIONS, StorageError("quota exceeded"))
        with pytest.raises(PartialCommitError) as excinfo:
            await engine.create_transaction(
                account.id, "expense", "30", category_id=category.id, timestamp=WHEN
            )
        err = excinfo.value
        assert err.completed == ["account", "category"]
        assert err.failed == "transaction"
        assert isinstance(err.cause, StorageError)
        # Nothing is rolled back
        assert await balance_of(store, account.id) == Decimal("70")
        assert await spent_of(store, category.id) == Decimal("30")
        assert await store.list(Entity.TRANSACTIONS) == []
        assert audit_logger.events[-1].event_type == AuditEventType.PARTIAL_COMMIT

    async def test_committed_transaction_is_cached(self, engine, cache, account):
        txn = await engine.create_transaction(account.id, "income", "5", timestamp=WHEN)
        assert cache.get(txn.id) == txn

    async def test_audits_creation(self, engine, account, audit_logger):
        txn = await engine.create_transaction(account.id, "income", "5", timestamp=WHEN)
        event = audit_logger.events[-1]
        assert event.event_type == AuditEventType.TRANSACTION_CREATED
        assert event.entity_id == txn.id

    async def test_sum_of_many_transactions(self, engine, store):
        fresh = await store.upsert(Entity.ACCOUNTS, Account(name="Fresh", owner_id=OWNER))
        moves = [
            ("income", "1000.00"),
            ("expense", "12.34"),
            ("expense", "250"),
            ("income", "0.66"),
            ("expense", "99.99"),
        ]
        for kind, amount in moves:
            await engine.create_transaction(fresh.id, kind, amount, timestamp=WHEN)

        income = sum(Decimal(a) for k, a in moves if k == "income")
        expenses = sum(Decimal(a) for k, a in moves if k == "expense")
        assert await balance_of(store, fresh.id) == income - expenses


class TestDeleteTransaction:
    """Tests for LedgerEngine.delete_transaction."""

    async def test_round_trip_restores_aggregates(self, engine, store, account, category):
        txn = await engine.create_transaction(
            account.id, "expense", "42.10", category_id=category.id, timestamp=WHEN
        )
        deleted = await engine.delete_transaction(txn.id)

        assert deleted.id == txn.id
        assert await balance_of(store, account.id) == Decimal("100")
        assert await spent_of(store, category.id) == Decimal("0")
        assert await store.get(Entity.TRANSACTIONS, txn.id) is None

    async def test_income_round_trip(self, engine, store, account):
        txn = await engine.create_transaction(account.id, "income", "15", timestamp=WHEN)
        await engine.delete_transaction(txn.id)
        assert await balance_of(store, account.id) == Decimal("100")

    async def test_offline_delete_rejected(self, engine, store, monitor, account, category):
        txn = await engine.create_transaction(
            account.id, "expense", "10", category_id=category.id, timestamp=WHEN
        )
        await monitor.set_offline()
        store.write_log.clear()

        with pytest.raises(OfflineDeleteNotSupportedError):
            await engine.delete_transaction(txn.id)

        assert store.write_log == []
        assert await balance_of(store, account.id) == Decimal("90")
        assert await spent_of(store, category.id) == Decimal("10")
        assert await store.get(Entity.TRANSACTIONS, txn.id) is not None

    async def test_missing_transaction(self, engine):
        with pytest.raises(NotFoundError):
            await engine.delete_transaction(404)

    async def test_reversal_below_zero_spent_is_rejected(self, engine, store, account, category):
        txn = await engine.create_transaction(
            account.id, "expense", "10", category_id=category.id, timestamp=WHEN
        )
        # Someone reset the envelope behind our back
        await store.upsert(Entity.CATEGORIES, category.model_copy(update={"spent": Decimal("4")}))
        store.write_log.clear()

        with pytest.raises(ValidationError, match="negative spent"):
            await engine.delete_transaction(txn.id)
        assert store.write_log == []

    async def test_partial_commit_on_delete(self, engine, store, account, category):
        txn = await engine.create_transaction(
            account.id, "expense", "10", category_id=category.id, timestamp=WHEN
        )
        store.fail_next("delete", Entity.TRANSACTIONS)

        with pytest.raises(PartialCommitError) as excinfo:
            await engine.delete_transaction(txn.id)

        assert excinfo.value.completed == ["account", "category"]
        assert excinfo.value.transaction_id == txn.id
        assert await balance_of(store, account.id) == Decimal("100")
        assert await store.get(Entity.TRANSACTIONS, txn.id) is not None

    async def test_delete_evicts_cache(self, engine, cache, account):
        txn = await engine.create_transaction(account.id, "expense", "1", timestamp=WHEN)
        await engine.delete_transaction(txn.id)
        assert cache.get(txn.id) is None

    async def test_default_timestamp_picks_current_period(self, engine, store, account):
        txn = await engine.create_transaction(account.id, "income", "1")
        assert txn.period == datetime.utcnow().strftime("%Y-%m")
