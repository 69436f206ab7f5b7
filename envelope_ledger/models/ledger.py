"""
Core Ledger Models for Envelope Ledger

These models define the records that flow between the engine, the
remote store and the local cache:
1. Account - a bank account with a running balance
2. Category - a spending envelope with a per-period spent total
3. Transaction - a single income or expense
4. MonthlySummary - derived totals for one period

DESIGN DECISION: Amounts are always stored as positive magnitudes.
The sign of a transaction's effect comes from its kind, never from
the number itself. Reversal is then just "apply the opposite kind".
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS
# =============================================================================

class TransactionKind(str, Enum):
    """Direction of a transaction's effect on its account."""
    EXPENSE = "expense"
    INCOME = "income"


class Entity(str, Enum):
    """
    Record collections held by the remote store.

    The values double as table / worksheet names.
    """
    ACCOUNTS = "accounts"
    CATEGORIES = "categories"
    TRANSACTIONS = "transactions"
    MONTHLY_SUMMARIES = "monthly_summaries"


class ChangeType(str, Enum):
    """Kind of change reported by a store subscription."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# Label used for expenses that carry no category
UNCATEGORIZED_LABEL = "Other"


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class Account(BaseModel):
    """
    A bank account.

    The balance is an aggregate: it is only ever changed by the
    ledger engine as a side effect of creating or deleting a
    transaction. It may go negative.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[int] = Field(
        default=None,
        description="Store-assigned identifier"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Account name"
    )
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Current balance"
    )
    owner_id: str = Field(
        ...,
        min_length=1,
        description="Owning user"
    )


class Category(BaseModel):
    """
    A spending category (an "envelope").

    `spent` accumulates expense amounts for a single period and is
    reset by creating a fresh category for the next period.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[int] = None
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Category name"
    )
    budget: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Amount budgeted for the period"
    )
    spent: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Sum of expenses recorded against this category"
    )
    period: str = Field(
        ...,
        pattern=r"^\d{4}-(0[1-9]|1[0-2])$",
        description="Period key (YYYY-MM)"
    )
    owner_id: str = Field(..., min_length=1)

    @property
    def remaining(self) -> Decimal:
        """Budget left for the period (negative when overspent)."""
        return self.budget - self.spent


class Transaction(BaseModel):
    """
    A single income or expense.

    `pending` is True only while the record sits in the local offline
    queue. Records read back from the remote store are never pending.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[int] = None
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Positive magnitude of the transaction"
    )
    kind: TransactionKind
    description: str = Field(
        default="",
        max_length=500,
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the transaction happened"
    )
    account_id: int = Field(
        ...,
        description="Account the transaction is applied to"
    )
    category_id: Optional[int] = Field(
        default=None,
        description="Category (expenses only)"
    )
    owner_id: str = Field(..., min_length=1)
    pending: bool = False

    @model_validator(mode="after")
    def drop_category_for_income(self) -> "Transaction":
        """Income never counts against a category."""
        if self.kind == TransactionKind.INCOME and self.category_id is not None:
            self.category_id = None
        return self

    @property
    def period(self) -> str:
        """Period key (YYYY-MM) the transaction falls in."""
        return self.timestamp.strftime("%Y-%m")

    @property
    def signed_amount(self) -> Decimal:
        """Effect on the account balance."""
        if self.kind == TransactionKind.EXPENSE:
            return -self.amount
        return self.amount


class MonthlySummary(BaseModel):
    """
    Income and expense totals for one owner and period.

    Derived data: it can always be recomputed from the transaction
    history and is never a source of truth.
    """

    id: Optional[int] = None
    owner_id: str = Field(..., min_length=1)
    period: str = Field(..., pattern=r"^\d{4}-(0[1-9]|1[0-2])$")
    total_income: Decimal = Field(default=Decimal("0"), ge=0)
    total_expenses: Decimal = Field(default=Decimal("0"), ge=0)
    category_expenses: dict[str, Decimal] = Field(default_factory=dict)
    created_at: Optional[datetime] = Field(
        default=None,
        description="Set when the summary is first stored; kept on recompute"
    )

    @field_validator("category_expenses")
    @classmethod
    def sort_category_keys(cls, v: dict[str, Decimal]) -> dict[str, Decimal]:
        """Keep a stable key order so equal summaries serialize identically."""
        return {name: v[name] for name in sorted(v)}

    @property
    def net(self) -> Decimal:
        return self.total_income - self.total_expenses

    def totals(self) -> tuple[Decimal, Decimal, dict[str, Decimal]]:
        """The derived part of the summary, without identity or timestamps."""
        return self.total_income, self.total_expenses, dict(self.category_expenses)


class ChangeNotification(BaseModel):
    """
    A change reported by the remote store.

    Carries no payload: subscribers use it to re-fetch the record by id.
    """

    change: ChangeType
    entity: Entity
    id: int
    owner_id: str


# Model class stored in each entity collection
ENTITY_MODELS: dict[Entity, type[BaseModel]] = {
    Entity.ACCOUNTS: Account,
    Entity.CATEGORIES: Category,
    Entity.TRANSACTIONS: Transaction,
    Entity.MONTHLY_SUMMARIES: MonthlySummary,
}
