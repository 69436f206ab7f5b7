"""
Storage Services Package

Provides the abstract remote store interface and its implementations.
Google Sheets is the production backend; the in-memory store backs tests
and unconfigured installs.
"""

from envelope_ledger.services.storage.interface import (
    AuditStorageInterface,
    ChangeFeed,
    ChangeSubscription,
    NotFoundError,
    RemoteStore,
    RemoteUnavailableError,
    StorageError,
)
from envelope_ledger.services.storage.memory import InMemoryRemoteStore
from envelope_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ChangeFeed",
    "ChangeSubscription",
    "RemoteStore",
    # Exceptions
    "NotFoundError",
    "RemoteUnavailableError",
    "StorageError",
    # Implementations
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
    "InMemoryRemoteStore",
]
