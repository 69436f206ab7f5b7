"""Services package."""

from envelope_ledger.services.cache import LocalCacheStore
from envelope_ledger.services.connectivity import ConnectivityMonitor, ConnectivityState
from envelope_ledger.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRemoteStore,
    InMemoryRemoteStore,
    NotFoundError,
    RemoteStore,
    RemoteUnavailableError,
    StorageError,
)

__all__ = [
    # Local cache
    "LocalCacheStore",
    # Connectivity
    "ConnectivityMonitor",
    "ConnectivityState",
    # Storage services
    "AuditStorageInterface",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsRemoteStore",
    "InMemoryRemoteStore",
    "NotFoundError",
    "RemoteStore",
    "RemoteUnavailableError",
    "StorageError",
]
