"""
Error Taxonomy for Envelope Ledger

Store failures (NotFoundError, RemoteUnavailableError) come from the
storage layer and are re-exported here so callers can import the whole
taxonomy from one place.
"""

from typing import Optional

from envelope_ledger.services.storage.interface import (
    NotFoundError,
    RemoteUnavailableError,
    StorageError,
)


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class ValidationError(LedgerError):
    """Write rejected before anything was sent to the store."""
    pass


class InvalidAmountError(ValidationError):
    """Amount is zero, negative or not a number."""
    pass


class OfflineDeleteNotSupportedError(LedgerError):
    """Deletes are never queued; they need a live connection."""
    pass


class PartialCommitError(LedgerError):
    """
    Some writes of a multi-record batch landed and one failed.

    The store has no multi-record transaction, so nothing is rolled
    back. `completed` lists the steps that were committed, `failed` is
    the step that raised, `cause` the underlying error.
    """

    def __init__(
        self,
        operation: str,
        completed: list[str],
        failed: str,
        cause: Exception,
        transaction_id: Optional[int] = None,
    ):
        self.operation = operation
        self.completed = list(completed)
        self.failed = failed
        self.cause = cause
        self.transaction_id = transaction_id
        super().__init__(
            f"{operation} partially committed "
            f"(done: {', '.join(completed) or 'nothing'}; failed: {failed}): {cause}"
        )


__all__ = [
    "InvalidAmountError",
    "LedgerError",
    "NotFoundError",
    "OfflineDeleteNotSupportedError",
    "PartialCommitError",
    "RemoteUnavailableError",
    "StorageError",
    "ValidationError",
]
