"""
Ledger Consistency Engine

Keeps three related records consistent: the account balance, the
category spent total and the transaction itself.

DESIGN DECISION: The remote store has no multi-record transaction, so
every ledger write is an ordered batch of single-record writes:

    create:  account balance -> category spent -> insert transaction
    delete:  account balance -> category spent -> delete transaction

Aggregates are always written before (never after) the transaction row
changes. If the FIRST write fails nothing was committed and the original
error propagates, so an unreachable store can safely fall back to the
offline queue. If a LATER write fails we raise PartialCommitError and
leave the committed writes in place; the caller decides whether to
retry. There is no automatic rollback.

KNOWN GAP: balances and spent totals are read-then-written, re-read
immediately before each delta. Two concurrent writers can still lose
an update.
"""

from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, Optional
from uuid import UUID

import structlog

from envelope_ledger.audit import AuditLogger, create_correlation_id
from envelope_ledger.errors import (
    OfflineDeleteNotSupportedError,
    PartialCommitError,
    RemoteUnavailableError,
    ValidationError,
)
from envelope_ledger.ledger.periods import period_of
from envelope_ledger.models.ledger import (
    Account,
    Category,
    Entity,
    Transaction,
    TransactionKind,
)
from envelope_ledger.services.cache import LocalCacheStore
from envelope_ledger.services.connectivity import ConnectivityMonitor
from envelope_ledger.services.storage import RemoteStore
from envelope_ledger.validation import TransactionValidator


logger = structlog.get_logger(__name__)

Step = tuple[str, Callable[[], Awaitable[object]]]


def apply_effect(
    balance: Decimal,
    spent: Optional[Decimal],
    kind: TransactionKind,
    amount: Decimal,
) -> tuple[Decimal, Optional[Decimal]]:
    """
    New (balance, spent) after applying a transaction.

    `spent` is None when the transaction has no category.
    """
    if kind == TransactionKind.EXPENSE:
        return balance - amount, (spent + amount if spent is not None else None)
    return balance + amount, spent


def reverse_effect(
    balance: Decimal,
    spent: Optional[Decimal],
    kind: TransactionKind,
    amount: Decimal,
) -> tuple[Decimal, Optional[Decimal]]:
    """Exact inverse of apply_effect."""
    if kind == TransactionKind.EXPENSE:
        return balance + amount, (spent - amount if spent is not None else None)
    return balance - amount, spent


class LedgerEngine:
    """
    Applies and reverses transaction effects against the remote store.

    One engine serves one owner. The connectivity monitor is consulted
    before any remote call.
    """

    def __init__(
        self,
        store: RemoteStore,
        monitor: ConnectivityMonitor,
        owner_id: str,
        cache: Optional[LocalCacheStore] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._monitor = monitor
        self._owner_id = owner_id
        self._cache = cache
        self._audit_logger = audit_logger
        self._validator = TransactionValidator(owner_id)

    @property
    def owner_id(self) -> str:
        return self._owner_id

    @property
    def validator(self) -> TransactionValidator:
        return self._validator

    def _require_online(self) -> None:
        if not self._monitor.is_online:
            raise RemoteUnavailableError("Offline: remote store not contacted")

    async def _commit(
        self,
        operation: str,
        steps: list[Step],
        correlation_id: UUID,
        transaction_id: Optional[int] = None,
    ) -> list[object]:
        """
        Run the writes of a batch in order.

        Raises:
            The first step's own error if nothing was committed.
            PartialCommitError if a later step failed.
        """
        completed: list[str] = []
        results: list[object] = []
        for name, write in steps:
            try:
                results.append(await write())
            except Exception as e:
                if not completed:
                    raise
                logger.error(
                    "partial_commit",
                    operation=operation,
                    completed=completed,
                    failed=name,
                    error=str(e),
                )
                if self._audit_logger:
                    await self._audit_logger.log_partial_commit(
                        operation=operation,
                        completed=completed,
                        failed=name,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                raise PartialCommitError(
                    operation, completed, name, e, transaction_id=transaction_id
                ) from e
            completed.append(name)
        return results

    async def create_transaction(
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
        Record a transaction and apply its effect to account and category.

        Returns:
            The committed transaction

        Raises:
            InvalidAmountError: amount <= 0
            ValidationError: bad kind, or category period mismatch
            NotFoundError: account / category missing or not owned by the caller
            RemoteUnavailableError: offline, or store unreachable before any write
            PartialCommitError: some writes landed, a later one failed
        """
        correlation_id = correlation_id or create_correlation_id()
        value = self._validator.validate_amount(amount)
        kind = self._validator.validate_kind(kind)
        timestamp = timestamp or datetime.utcnow()
        period = period_of(timestamp)
        if kind == TransactionKind.INCOME:
            category_id = None

        self._require_online()

        # Re-read right before computing the deltas
        account = self._validator.check_account(
            await self._store.get(Entity.ACCOUNTS, account_id), account_id
        )
        category: Optional[Category] = None
        if category_id is not None:
            category = self._validator.check_category(
                await self._store.get(Entity.CATEGORIES, category_id), category_id, period
            )

        new_balance, new_spent = apply_effect(
            account.balance,
            category.spent if category else None,
            kind,
            value,
        )
        transaction = Transaction(
            amount=value,
            kind=kind,
            description=description,
            timestamp=timestamp,
            account_id=account_id,
            category_id=category_id,
            owner_id=self._owner_id,
        )

        steps: list[Step] = [
            ("account", lambda: self._store.upsert(
                Entity.ACCOUNTS, account.model_copy(update={"balance": new_balance}))),
        ]
        if category is not None:
            steps.append(("category", lambda: self._store.upsert(
                Entity.CATEGORIES, category.model_copy(update={"spent": new_spent}))))
        steps.append(("transaction", lambda: self._store.upsert(Entity.TRANSACTIONS, transaction)))

        results = await self._commit("create_transaction", steps, correlation_id)
        committed: Transaction = results[-1]

        if self._cache is not None:
            self._cache.put(committed)

        logger.info(
            "transaction_created",
            transaction_id=committed.id,
            kind=kind.value,
            amount=str(value),
            balance=str(new_balance),
        )
        if self._audit_logger:
            await self._audit_logger.log_transaction_created(
                transaction_id=committed.id,
                kind=kind.value,
                amount=value,
                account_id=account_id,
                category_id=category_id,
                correlation_id=correlation_id,
            )
        return committed

    async def delete_transaction(
        self,
        transaction_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Reverse a transaction's effect, then delete it.

        Returns:
            The deleted transaction

        Raises:
            OfflineDeleteNotSupportedError: while offline (nothing is touched)
            NotFoundError: transaction, account or category missing
            ValidationError: reversal would drive a category's spent below zero
            RemoteUnavailableError: store unreachable before any write
            PartialCommitError: some writes landed, a later one failed
        """
        if not self._monitor.is_online:
            raise OfflineDeleteNotSupportedError(
                "Transactions can only be deleted while online"
            )
        correlation_id = correlation_id or create_correlation_id()

        transaction = self._validator.check_transaction(
            await self._store.get(Entity.TRANSACTIONS, transaction_id), transaction_id
        )
        account: Account = self._validator.check_account(
            await self._store.get(Entity.ACCOUNTS, transaction.account_id),
            transaction.account_id,
        )
        category: Optional[Category] = None
        if transaction.kind == TransactionKind.EXPENSE and transaction.category_id is not None:
            category = self._validator.check_category(
                await self._store.get(Entity.CATEGORIES, transaction.category_id),
                transaction.category_id,
                transaction.period,
            )

        new_balance, new_spent = reverse_effect(
            account.balance,
            category.spent if category else None,
            transaction.kind,
            transaction.amount,
        )
        if new_spent is not None and new_spent < 0:
            raise ValidationError(
                f"Reversing transaction {transaction_id} would leave category "
                f"{category.name!r} with negative spent ({new_spent})"
            )

        steps: list[Step] = [
            ("account", lambda: self._store.upsert(
                Entity.ACCOUNTS, account.model_copy(update={"balance": new_balance}))),
        ]
        if category is not None:
            steps.append(("category", lambda: self._store.upsert(
                Entity.CATEGORIES, category.model_copy(update={"spent": new_spent}))))
        steps.append(("transaction", lambda: self._store.delete(Entity.TRANSACTIONS, transaction_id)))

        await self._commit("delete_transaction", steps, correlation_id, transaction_id)

        if self._cache is not None:
            self._cache.delete(transaction_id)

        logger.info(
            "transaction_deleted",
            transaction_id=transaction_id,
            kind=transaction.kind.value,
            amount=str(transaction.amount),
            balance=str(new_balance),
        )
        if self._audit_logger:
            await self._audit_logger.log_transaction_deleted(
                transaction_id=transaction_id,
                kind=transaction.kind.value,
                amount=transaction.amount,
                correlation_id=correlation_id,
            )
        return transaction
