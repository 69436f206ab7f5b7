"""Validation package."""

from envelope_ledger.validation.validator import TransactionValidator

__all__ = ["TransactionValidator"]
