"""
Durable key-value stores for geocode cache entries.

The SQLite store heals itself: if the database file turns out to be
read-only or corrupted, it is deleted together with its sidecar files,
recreated empty, and the failed operation is retried once. Losing cached
coordinates only costs lookup budget on the next run.
"""

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Optional, TypeVar

from forest_reconcile.cache.migrations import apply_schema
from forest_reconcile.cache.models import GeocodeCacheEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")

SIDECAR_SUFFIXES = ("-wal", "-shm", "-journal")

_CORRUPTION_MARKERS = (
    "readonly database",
    "file is not a database",
    "database disk image is malformed",
)


def is_recoverable_store_error(error: Exception) -> bool:
    """True for sqlite errors that mean the file itself is unusable."""
    if not isinstance(error, sqlite3.DatabaseError):
        return False
    message = str(error).lower()
    return any(marker in message for marker in _CORRUPTION_MARKERS)


class KeyValueStore(ABC):
    """Storage contract for cache entries, with an explicit reset."""

    @abstractmethod
    def get(self, key: str) -> Optional[GeocodeCacheEntry]:
        """Return the entry for key, or None."""

    @abstractmethod
    def put(self, key: str, entry: GeocodeCacheEntry) -> None:
        """Insert or overwrite the entry for key."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove key; returns True if something was deleted."""

    @abstractmethod
    def reset(self) -> None:
        """Drop every entry and start from an empty store."""

    @abstractmethod
    def count(self) -> int:
        """Number of stored keys."""

    @abstractmethod
    def count_by_provider(self) -> Dict[str, int]:
        """Number of stored keys per provider name."""


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed store for tests and throwaway runs."""

    def __init__(self):
        self._entries: Dict[str, GeocodeCacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[GeocodeCacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def put(self, key: str, entry: GeocodeCacheEntry) -> None:
        with self._lock:
            self._entries[key] = entry.with_key(key)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def count_by_provider(self) -> Dict[str, int]:
        with self._lock:
            counts: Dict[str, int] = {}
            for entry in self._entries.values():
                provider = entry.provider or "UNKNOWN"
                counts[provider] = counts.get(provider, 0) + 1
            return counts


class SQLiteKeyValueStore(KeyValueStore):
    """SQLite-backed store with corruption self-healing."""

    def __init__(self, db_path: Path):
        """Initialize store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._lock = threading.RLock()
        self.recoveries = 0
        self._with_recovery("open", self._ensure_schema)

    def _ensure_schema(self) -> None:
        """Create tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        apply_schema(self.db_path)

    @contextmanager
    def _get_connection(self):
        """Get database connection with proper error handling."""
        conn = sqlite3.connect(
            self.db_path,
            timeout=30.0,
            isolation_level="DEFERRED"
        )
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _with_recovery(self, operation: str, action: Callable[[], T]) -> T:
        """Run action; on a corrupted store, recreate it and retry exactly once."""
        with self._lock:
            try:
                return action()
            except sqlite3.DatabaseError as e:
                if not is_recoverable_store_error(e):
                    raise
                logger.warning(
                    "Geocode cache %s failed (%s); recreating %s", operation, e, self.db_path
                )
                self.recoveries += 1
                self._recreate()
                return action()

    def _recreate(self) -> None:
        for path in [self.db_path] + [
            self.db_path.with_name(self.db_path.name + suffix) for suffix in SIDECAR_SUFFIXES
        ]:
            path.unlink(missing_ok=True)
        self._ensure_schema()

    def get(self, key: str) -> Optional[GeocodeCacheEntry]:
        def action() -> Optional[GeocodeCacheEntry]:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT * FROM geocode_cache WHERE cache_key = ?", (key,)
                ).fetchone()
            return self._row_to_entry(row) if row else None

        return self._with_recovery("read", action)

    def put(self, key: str, entry: GeocodeCacheEntry) -> None:
        def action() -> None:
            with self._get_connection() as conn:
                conn.execute(
                    """INSERT INTO geocode_cache
                       (cache_key, latitude, longitude, display_name, confidence, provider, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?)
                       ON CONFLICT(cache_key) DO UPDATE SET
                         latitude = excluded.latitude,
                         longitude = excluded.longitude,
                         display_name = excluded.display_name,
                         confidence = excluded.confidence,
                         provider = excluded.provider,
                         updated_at = excluded.updated_at""",
                    (
                        key,
                        entry.latitude,
                        entry.longitude,
                        entry.display_name,
                        entry.confidence,
                        entry.provider,
                        entry.updated_at.isoformat(),
                    ),
                )

        self._with_recovery("write", action)

    def delete(self, key: str) -> bool:
        def action() -> bool:
            with self._get_connection() as conn:
                cursor = conn.execute("DELETE FROM geocode_cache WHERE cache_key = ?", (key,))
                return cursor.rowcount > 0

        return self._with_recovery("delete", action)

    def reset(self) -> None:
        with self._lock:
            logger.info("Resetting geocode cache at %s", self.db_path)
            self._recreate()

    def count(self) -> int:
        def action() -> int:
            with self._get_connection() as conn:
                return conn.execute("SELECT COUNT(*) FROM geocode_cache").fetchone()[0]

        return self._with_recovery("count", action)

    def count_by_provider(self) -> Dict[str, int]:
        def action() -> Dict[str, int]:
            with self._get_connection() as conn:
                rows = conn.execute(
                    """SELECT COALESCE(provider, 'UNKNOWN') AS provider, COUNT(*) AS n
                       FROM geocode_cache GROUP BY 1"""
                ).fetchall()
            return {row["provider"]: row["n"] for row in rows}

        return self._with_recovery("count", action)

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> GeocodeCacheEntry:
        return GeocodeCacheEntry(
            key=row["cache_key"],
            latitude=row["latitude"],
            longitude=row["longitude"],
            display_name=row["display_name"],
            confidence=row["confidence"],
            provider=row["provider"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
