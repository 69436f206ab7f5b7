"""
Aggregate Summarizer

Recomputes monthly income / expense / per-category totals from the raw
transaction history.

DESIGN DECISION: Summaries are derived data. compute_summary() is a
pure function of the transaction set, so running it twice on the same
history gives an identical result, and upserting by (owner, period) is
always safe.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

import structlog

from envelope_ledger.audit import AuditLogger
from envelope_ledger.ledger.periods import parse_period, period_of, previous_period
from envelope_ledger.models.ledger import (
    UNCATEGORIZED_LABEL,
    Entity,
    MonthlySummary,
    Transaction,
    TransactionKind,
)
from envelope_ledger.services.storage import RemoteStore


logger = structlog.get_logger(__name__)


def compute_summary(
    transactions: Iterable[Transaction],
    category_names: dict[int, str],
    owner_id: str,
    period: str,
) -> MonthlySummary:
    """
    Totals for one owner and period.

    Args:
        transactions: Candidate transactions; other owners and periods are ignored
        category_names: Category id -> name
        owner_id: Owner the summary is for
        period: Period key (YYYY-MM)

    Returns:
        An unsaved MonthlySummary with no id and no created_at. Expenses
        without a known category are counted under "Other".
    """
    parse_period(period)

    total_income = Decimal("0")
    total_expenses = Decimal("0")
    by_category: dict[str, Decimal] = {}

    for txn in transactions:
        if txn.owner_id != owner_id or txn.period != period:
            continue
        if txn.kind == TransactionKind.INCOME:
            total_income += txn.amount
            continue
        total_expenses += txn.amount
        name = UNCATEGORIZED_LABEL
        if txn.category_id is not None:
            name = category_names.get(txn.category_id, UNCATEGORIZED_LABEL)
        by_category[name] = by_category.get(name, Decimal("0")) + txn.amount

    return MonthlySummary(
        owner_id=owner_id,
        period=period,
        total_income=total_income,
        total_expenses=total_expenses,
        category_expenses=by_category,
    )


class MonthlySummarizer:
    """Computes and stores monthly summaries for one owner."""

    def __init__(
        self,
        store: RemoteStore,
        owner_id: str,
        audit_logger: Optional[AuditLogger] = None,
        history_limit: int = 12,
    ):
        self._store = store
        self._owner_id = owner_id
        self._audit_logger = audit_logger
        self._history_limit = history_limit

    async def _existing(self, period: str) -> Optional[MonthlySummary]:
        found = await self._store.list(
            Entity.MONTHLY_SUMMARIES,
            filters={"owner_id": self._owner_id, "period": period},
            limit=1,
        )
        return found[0] if found else None

    async def summarize(self, period: str) -> MonthlySummary:
        """Recompute a period's summary and upsert it."""
        transactions = await self._store.list(
            Entity.TRANSACTIONS, filters={"owner_id": self._owner_id}
        )
        categories = await self._store.list(
            Entity.CATEGORIES, filters={"owner_id": self._owner_id}
        )
        summary = compute_summary(
            transactions,
            {c.id: c.name for c in categories},
            self._owner_id,
            period,
        )

        existing = await self._existing(period)
        if existing is not None:
            summary = summary.model_copy(
                update={"id": existing.id, "created_at": existing.created_at}
            )
        else:
            summary = summary.model_copy(update={"created_at": datetime.utcnow()})
        saved = await self._store.upsert(Entity.MONTHLY_SUMMARIES, summary)

        count = sum(1 for t in transactions if t.period == period)
        logger.info(
            "summary_computed",
            period=period,
            total_income=str(saved.total_income),
            total_expenses=str(saved.total_expenses),
        )
        if self._audit_logger:
            await self._audit_logger.log_summary_computed(
                summary_id=saved.id,
                period=period,
                transaction_count=count,
            )
        return saved

    async def ensure_previous_period(self, today: Optional[date] = None) -> Optional[MonthlySummary]:
        """
        On the first day of a month, summarize the month before.

        Does nothing on other days or if that summary already exists.
        """
        today = today or date.today()
        if today.day != 1:
            return None
        period = previous_period(period_of(today))
        if await self._existing(period) is not None:
            return None
        return await self.summarize(period)

    async def list_summaries(self, limit: Optional[int] = None) -> list[MonthlySummary]:
        """Stored summaries, newest period first."""
        return await self._store.list(
            Entity.MONTHLY_SUMMARIES,
            filters={"owner_id": self._owner_id},
            order_by="period",
            descending=True,
            limit=limit or self._history_limit,
        )
