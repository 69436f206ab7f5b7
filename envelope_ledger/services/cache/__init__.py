"""Local cache package."""

from envelope_ledger.services.cache.sqlite_cache import LocalCacheStore

__all__ = ["LocalCacheStore"]
