"""
Database migration system for cache schema.
"""

import sqlite3
from pathlib import Path

SCHEMA_PATH = Path(__file__).parent / "schema.sql"
LATEST_VERSION = 2


def get_current_version(conn: sqlite3.Connection) -> int:
    """Get current schema version.

    Args:
        conn: Database connection

    Returns:
        Current schema version, or 0 if no version table exists
    """
    try:
        cursor = conn.execute("SELECT MAX(version) FROM schema_version")
        result = cursor.fetchone()
        return result[0] if result[0] is not None else 0
    except sqlite3.OperationalError:
        # Table doesn't exist yet
        return 0


def _column_names(conn: sqlite3.Connection, table: str) -> set:
    return {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}


def _migrate_add_provider(conn: sqlite3.Connection) -> None:
    """v2: record which provider produced each entry."""
    if "provider" not in _column_names(conn, "geocode_cache"):
        conn.execute("ALTER TABLE geocode_cache ADD COLUMN provider TEXT")
    conn.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (2)")


def apply_schema(db_path: Path) -> None:
    """Apply schema and pending migrations to database.

    Creates tables if they don't exist. Safe to run multiple times, and
    upgrades caches written before the provider column existed.

    Args:
        db_path: Path to SQLite database file
    """
    schema_sql = SCHEMA_PATH.read_text()

    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(schema_sql)
        if get_current_version(conn) < LATEST_VERSION:
            _migrate_add_provider(conn)
        conn.commit()
    finally:
        conn.close()
