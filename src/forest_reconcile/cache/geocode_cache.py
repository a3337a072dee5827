"""
Geocode cache facade over a key-value store.

Every resolved coordinate is stored under its literal query key and, when
known, under a stable alias key for the forest or area it belongs to.
Lookups check the alias first so differently phrased queries for the same
forest still hit.
"""

import logging
from typing import Any, Callable, Dict, Optional, Tuple

from forest_reconcile.cache.kv_store import KeyValueStore
from forest_reconcile.cache.models import GeocodeCacheEntry
from forest_reconcile.utils.text_normalize import normalize_cache_key

logger = logging.getLogger(__name__)


def query_key(query: str) -> str:
    return f"query:{normalize_cache_key(query)}"


def alias_key(alias: str) -> str:
    return f"alias:{normalize_cache_key(alias)}"


class GeocodeCache:
    """Query/alias keyed access to cached coordinates."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def get(self, key: str) -> Optional[GeocodeCacheEntry]:
        return self.store.get(key)

    def put(self, key: str, entry: GeocodeCacheEntry) -> None:
        self.store.put(key, entry.with_key(key))

    def lookup(
        self,
        query_cache_key: str,
        alias_cache_key: Optional[str] = None,
        accept: Optional[Callable[[GeocodeCacheEntry], bool]] = None,
    ) -> Tuple[Optional[GeocodeCacheEntry], Optional[str]]:
        """Find a cached coordinate, alias key first.

        A hit found only under the query key is copied to the alias key so
        the next lookup for the same forest resolves by alias. Entries the
        accept callback rejects are stale: they are deleted and skipped.

        Args:
            query_cache_key: Key built with query_key()
            alias_cache_key: Key built with alias_key(), if any
            accept: Optional check applied to each candidate entry

        Returns:
            (entry, key it was found under), or (None, None) on a miss
        """
        keys = [alias_cache_key, query_cache_key] if alias_cache_key else [query_cache_key]
        for key in keys:
            entry = self.store.get(key)
            if entry is None:
                continue
            if accept is not None and not accept(entry):
                logger.info(f"Dropping stale cache entry {key} ({entry.display_name})")
                self.store.delete(key)
                continue
            if alias_cache_key and key != alias_cache_key:
                self.put(alias_cache_key, entry)
            return entry, key
        return None, None

    def store_hit(
        self,
        entry: GeocodeCacheEntry,
        query_cache_key: str,
        alias_cache_key: Optional[str] = None,
    ) -> None:
        """Write a fresh provider result under the query key and the alias key."""
        self.put(query_cache_key, entry)
        if alias_cache_key and alias_cache_key != query_cache_key:
            self.put(alias_cache_key, entry)

    def clear(self) -> None:
        self.store.reset()

    def statistics(self) -> Dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with total entries and entries per provider
        """
        return {
            "total_entries": self.store.count(),
            "by_provider": self.store.count_by_provider(),
        }
