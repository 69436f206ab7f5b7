"""
Tests for Envelope Ledger models

Test strategy:
1. Unit tests for individual components (models, validators, helpers)
2. Integration tests for flows (against the in-memory store)
3. No real API calls in tests (fakes only)
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from envelope_ledger.errors import InvalidAmountError, NotFoundError, ValidationError
from envelope_ledger.ledger.periods import (
    parse_period,
    period_of,
    period_range,
    previous_period,
)
from envelope_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from envelope_ledger.models.ledger import (
    Account,
    Category,
    MonthlySummary,
    Transaction,
    TransactionKind,
)
from envelope_ledger.validation import TransactionValidator


class TestLedgerModels:
    """Tests for ledger Pydantic models."""

    def test_account_strips_whitespace(self):
        """Test that whitespace is stripped from names."""
        account = Account(name="  Checking  ", owner_id="u1")
        assert account.name == "Checking"
        assert account.balance == Decimal("0")

    def test_account_balance_may_be_negative(self):
        """Test that an overdrawn account is a valid account."""
        account = Account(name="Card", balance=Decimal("-20.50"), owner_id="u1")
        assert account.balance == Decimal("-20.50")

    def test_category_rejects_negative_spent(self):
        """Test that spent can't go below zero."""
        with pytest.raises(PydanticValidationError):
            Category(name="Fuel", spent=Decimal("-1"), period="2025-03", owner_id="u1")

    def test_category_period_format(self):
        """Test that periods must be YYYY-MM."""
        with pytest.raises(PydanticValidationError):
            Category(name="Fuel", period="2025-3", owner_id="u1")
        with pytest.raises(PydanticValidationError):
            Category(name="Fuel", period="2025-13", owner_id="u1")

    def test_category_remaining(self):
        """Test remaining budget, including overspend."""
        category = Category(
            name="Fuel", budget=Decimal("50"), spent=Decimal("65"),
            period="2025-03", owner_id="u1",
        )
        assert category.remaining == Decimal("-15")

    def test_transaction_rejects_non_positive_amount(self):
        """Test that amounts are strictly positive magnitudes."""
        for amount in ("0", "-1"):
            with pytest.raises(PydanticValidationError):
                Transaction(
                    amount=Decimal(amount), kind=TransactionKind.EXPENSE,
                    account_id=1, owner_id="u1",
                )

    def test_income_drops_category(self):
        """Test that income never keeps a category."""
        txn = Transaction(
            amount=Decimal("10"), kind=TransactionKind.INCOME,
            account_id=1, category_id=3, owner_id="u1",
        )
        assert txn.category_id is None

    def test_transaction_period_and_sign(self):
        """Test derived period and signed amount."""
        txn = Transaction(
            amount=Decimal("10"), kind="expense",
            timestamp=datetime(2024, 12, 31, 23, 59), account_id=1, owner_id="u1",
        )
        assert txn.period == "2024-12"
        assert txn.signed_amount == Decimal("-10")
        assert txn.pending is False

    def test_summary_category_keys_sorted(self):
        """Test that category totals serialize in a stable order."""
        summary = MonthlySummary(
            owner_id="u1",
            period="2025-03",
            total_expenses=Decimal("6"),
            category_expenses={"Rent": Decimal("5"), "Other": Decimal("1")},
        )
        assert list(summary.category_expenses) == ["Other", "Rent"]
        assert summary.net == Decimal("-6")


class TestPeriods:
    """Tests for period helpers."""

    def test_period_of(self):
        assert period_of(date(2025, 1, 9)) == "2025-01"
        assert period_of(datetime(2025, 11, 30, 8)) == "2025-11"

    def test_previous_period_wraps_year(self):
        """Test that January's previous period is last December."""
        assert previous_period("2025-01") == "2024-12"
        assert previous_period("2025-03") == "2025-02"

    def test_period_range(self):
        """Test range bounds and label."""
        assert period_range("2024-02") == ("2024-02-01", "2024-03-01", "February 2024")
        assert period_range("2024-12") == ("2024-12-01", "2025-01-01", "December 2024")

    def test_parse_period_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_period("2025-13")
        with pytest.raises(ValueError):
            parse_period("March")


class TestTransactionValidator:
    """Tests for TransactionValidator."""

    def test_validate_amount_coerces(self):
        """Test that strings and floats become Decimals."""
        validator = TransactionValidator("u1")
        assert validator.validate_amount("12.30") == Decimal("12.30")
        assert validator.validate_amount(5) == Decimal("5")

    @pytest.mark.parametrize("amount", [0, "-0.01", "ten", None, "Infinity"])
    def test_validate_amount_rejects(self, amount):
        with pytest.raises(InvalidAmountError):
            TransactionValidator("u1").validate_amount(amount)

    def test_validate_kind(self):
        validator = TransactionValidator("u1")
        assert validator.validate_kind("income") == TransactionKind.INCOME
        with pytest.raises(ValidationError):
            validator.validate_kind("refund")

    def test_foreign_account_looks_missing(self):
        """Test that another owner's account is reported as not found."""
        account = Account(id=1, name="Theirs", owner_id="u2")
        with pytest.raises(NotFoundError, match="Account not found: 1"):
            TransactionValidator("u1").check_account(account, 1)

    def test_category_period_mismatch(self):
        category = Category(id=2, name="Fuel", period="2025-02", owner_id="u1")
        with pytest.raises(ValidationError):
            TransactionValidator("u1").check_category(category, 2, "2025-03")


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            description="Recorded expense",
        )
        assert event.event_type == AuditEventType.TRANSACTION_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.REPLAY_COMPLETED,
            description="Replay done",
            details={"committed_ids": [4, 5]},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "replay_completed"
        assert log_dict["details"]["committed_ids"] == [4, 5]

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=17,
            description="Deleted",
        )
        row = event.to_sheets_row()
        assert len(row) == 10  # Expected number of columns
        assert row[2] == "transaction_deleted"  # event_type
        assert row[5] == "17"  # entity_id
        assert row[8] == ""  # no details

    def test_audit_event_builder_transaction_created(self):
        """Test AuditEventBuilder.transaction_created."""
        correlation_id = uuid4()

        event = AuditEventBuilder.transaction_created(
            transaction_id=9,
            kind="expense",
            amount=Decimal("12.50"),
            account_id=1,
            category_id=2,
            correlation_id=correlation_id,
        )

        assert event.event_type == AuditEventType.TRANSACTION_CREATED
        assert event.entity_id == 9
        assert event.correlation_id == correlation_id
        assert event.details["amount"] == "12.50"

    def test_audit_event_builder_partial_commit(self):
        """Test AuditEventBuilder.partial_commit."""
        event = AuditEventBuilder.partial_commit(
            operation="create_transaction",
            completed=["account", "category"],
            failed="transaction",
            error_message="quota exceeded",
        )

        assert event.event_type == AuditEventType.PARTIAL_COMMIT
        assert event.severity == AuditSeverity.ERROR
        assert event.details["completed"] == ["account", "category"]
        assert event.error_message == "quota exceeded"

    def test_audit_event_builder_replay_halted(self):
        """Test AuditEventBuilder.replay_halted."""
        event = AuditEventBuilder.replay_halted(
            local_id=-2,
            error_message="offline",
            remaining=3,
            correlation_id=uuid4(),
        )
        assert event.severity == AuditSeverity.WARNING
        assert event.entity_id == -2
        assert event.details["remaining"] == 3


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
