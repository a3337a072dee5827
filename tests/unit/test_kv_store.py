"""
Unit tests for the key-value stores behind the geocode cache.
"""

import sqlite3

import pytest

from forest_reconcile.cache.kv_store import (
    InMemoryKeyValueStore,
    SQLiteKeyValueStore,
    is_recoverable_store_error,
)
from forest_reconcile.cache.migrations import LATEST_VERSION, SCHEMA_PATH, get_current_version
from forest_reconcile.cache.models import GeocodeCacheEntry


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "cache" / "coordinates.sqlite"


@pytest.fixture
def sample_entry():
    return GeocodeCacheEntry(
        key="query:belanglo state forest, new south wales, australia",
        latitude=-34.5312,
        longitude=150.2281,
        display_name="Belanglo State Forest, Wingecarribee Shire Council, New South Wales",
        confidence=0.45,
        provider="OSM_NOMINATIM",
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request, db_path):
    if request.param == "memory":
        return InMemoryKeyValueStore()
    return SQLiteKeyValueStore(db_path)


def test_put_and_get(store, sample_entry):
    store.put("alias:forest::belanglo state forest", sample_entry)

    retrieved = store.get("alias:forest::belanglo state forest")
    assert retrieved is not None
    assert retrieved.key == "alias:forest::belanglo state forest"
    assert retrieved.latitude == -34.5312
    assert retrieved.provider == "OSM_NOMINATIM"
    assert store.get("missing") is None


def test_put_overwrites(store, sample_entry):
    store.put("k", sample_entry)
    store.put("k", sample_entry.model_copy(update={"provider": "GOOGLE_GEOCODING", "confidence": 1.0}))

    assert store.count() == 1
    assert store.get("k").provider == "GOOGLE_GEOCODING"


def test_delete_and_counts(store, sample_entry):
    store.put("a", sample_entry)
    store.put("b", sample_entry.model_copy(update={"provider": "GOOGLE_GEOCODING"}))

    assert store.count() == 2
    assert store.count_by_provider() == {"OSM_NOMINATIM": 1, "GOOGLE_GEOCODING": 1}
    assert store.delete("a") is True
    assert store.delete("a") is False
    assert store.count() == 1


def test_reset(store, sample_entry):
    store.put("a", sample_entry)
    store.reset()
    assert store.count() == 0
    assert store.get("a") is None


def test_sqlite_store_persists_between_instances(db_path, sample_entry):
    SQLiteKeyValueStore(db_path).put("a", sample_entry)
    assert SQLiteKeyValueStore(db_path).get("a").display_name == sample_entry.display_name


def test_sqlite_store_recovers_from_garbage_file(db_path, sample_entry):
    """Test a non-database file is replaced instead of failing the run."""
    db_path.parent.mkdir(parents=True)
    db_path.write_bytes(b"this is not a sqlite database " * 200)

    store = SQLiteKeyValueStore(db_path)

    assert store.recoveries == 1
    assert store.count() == 0
    store.put("a", sample_entry)
    assert store.get("a") is not None


def test_sqlite_store_recovers_mid_run(db_path, sample_entry):
    """Test corruption after opening is healed on the next operation."""
    store = SQLiteKeyValueStore(db_path)
    store.put("a", sample_entry)

    db_path.write_bytes(b"corrupted " * 500)

    assert store.get("a") is None
    assert store.recoveries == 1
    store.put("a", sample_entry)
    assert store.get("a") is not None


def test_recoverable_error_detection():
    assert is_recoverable_store_error(sqlite3.DatabaseError("file is not a database"))
    assert is_recoverable_store_error(
        sqlite3.OperationalError("attempt to write a readonly database")
    )
    assert not is_recoverable_store_error(sqlite3.OperationalError("no such table: geocode_cache"))
    assert not is_recoverable_store_error(ValueError("file is not a database"))


def test_migrates_cache_without_provider_column(db_path, sample_entry):
    """Test caches written before the provider column are upgraded in place."""
    db_path.parent.mkdir(parents=True)
    conn = sqlite3.connect(db_path)
    conn.executescript(SCHEMA_PATH.read_text())
    conn.execute(
        "INSERT INTO geocode_cache (cache_key, latitude, longitude, display_name, confidence, updated_at) "
        "VALUES ('old', -30.0, 150.0, 'Old Forest', 0.5, '2024-01-01T00:00:00+00:00')"
    )
    conn.commit()
    conn.close()

    store = SQLiteKeyValueStore(db_path)

    old = store.get("old")
    assert old.display_name == "Old Forest"
    assert old.provider is None
    store.put("new", sample_entry)
    assert store.get("new").provider == "OSM_NOMINATIM"

    conn = sqlite3.connect(db_path)
    try:
        assert get_current_version(conn) == LATEST_VERSION
    finally:
        conn.close()
