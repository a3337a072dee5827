"""Persistent geocode cache."""

from forest_reconcile.cache.geocode_cache import GeocodeCache, alias_key, query_key
from forest_reconcile.cache.kv_store import (
    InMemoryKeyValueStore,
    KeyValueStore,
    SQLiteKeyValueStore,
)
from forest_reconcile.cache.models import GeocodeCacheEntry

__all__ = [
    "GeocodeCache",
    "GeocodeCacheEntry",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SQLiteKeyValueStore",
    "alias_key",
    "query_key",
]
