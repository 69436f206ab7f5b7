"""
Transaction Write Validation

Checks run before the ledger engine writes anything:

STAGE 1 - INPUT VALIDATION (no store access):
- Amount is a positive number
- Kind is a known transaction kind

STAGE 2 - REFERENCE VALIDATION (needs the fetched records):
- Account exists and belongs to the caller
- Category exists, belongs to the caller and covers the same period

IMPORTANT: Validation NEVER silently fixes issues.
It raises, and nothing has been written when it does.
"""

from decimal import Decimal, InvalidOperation
from typing import Optional

from envelope_ledger.errors import (
    InvalidAmountError,
    NotFoundError,
    ValidationError,
)
from envelope_ledger.models.ledger import Account, Category, Transaction, TransactionKind


class TransactionValidator:
    """Validates transaction writes for a single owner."""

    def __init__(self, owner_id: str):
        self._owner_id = owner_id

    def validate_amount(self, amount) -> Decimal:
        """
        Coerce and check an amount.

        Returns:
            The amount as a Decimal

        Raises:
            InvalidAmountError: If the amount is not a positive number
        """
        try:
            value = Decimal(str(amount))
        except (InvalidOperation, ValueError, TypeError):
            raise InvalidAmountError(f"Amount is not a number: {amount!r}")
        if not value.is_finite() or value <= 0:
            raise InvalidAmountError(f"Amount must be greater than zero, got {amount}")
        return value

    def validate_kind(self, kind) -> TransactionKind:
        try:
            return TransactionKind(kind)
        except ValueError:
            raise ValidationError(f"Unknown transaction kind: {kind!r}")

    def check_account(self, account: Optional[Account], account_id: int) -> Account:
        if account is None or account.owner_id != self._owner_id:
            # Foreign records are reported exactly like missing ones
            raise NotFoundError(f"Account not found: {account_id}")
        return account

    def check_category(
        self,
        category: Optional[Category],
        category_id: int,
        period: str,
    ) -> Category:
        if category is None or category.owner_id != self._owner_id:
            raise NotFoundError(f"Category not found: {category_id}")
        if category.period != period:
            raise ValidationError(
                f"Category {category.name!r} covers {category.period}, "
                f"transaction falls in {period}"
            )
        return category

    def check_transaction(
        self,
        transaction: Optional[Transaction],
        transaction_id: int,
    ) -> Transaction:
        if transaction is None or transaction.owner_id != self._owner_id:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        return transaction
