"""Versioned schema migrations for the embedding store.

Each step is idempotent: it checks for the tables and columns it adds,
so re-running a step against a database that already has them is safe.
Steps newer than the recorded version run once, in order, at startup.
"""

import logging
import sqlite3
from dataclasses import dataclass
from typing import Callable, List

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    apply: Callable[[sqlite3.Cursor], None]


def _table_exists(cursor: sqlite3.Cursor, table: str) -> bool:
    cursor.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
    )
    return cursor.fetchone() is not None


def _column_exists(cursor: sqlite3.Cursor, table: str, column: str) -> bool:
    cursor.execute(f"PRAGMA table_info({table})")
    return any(row[1] == column for row in cursor.fetchall())


def _add_column(cursor: sqlite3.Cursor, table: str, column: str, definition: str) -> None:
    if not _column_exists(cursor, table, column):
        cursor.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
        logger.info(f"Added column {table}.{column}")


def _create_base_tables(cursor: sqlite3.Cursor) -> None:
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS persons (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT UNIQUE NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS face_embeddings (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            person_id INTEGER NOT NULL,
            embedding BLOB NOT NULL,
            embedding_size INTEGER NOT NULL,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (person_id) REFERENCES persons(id) ON DELETE CASCADE
        )
    """)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS audit_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            operation TEXT NOT NULL,
            table_name TEXT NOT NULL,
            record_id INTEGER,
            old_values TEXT,
            new_values TEXT,
            user_info TEXT,
            timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            ip_address TEXT
        )
    """)


def _add_person_tracking(cursor: sqlite3.Cursor) -> None:
    _add_column(cursor, "persons", "name_hash", "TEXT")
    _add_column(cursor, "persons", "last_recognized", "TIMESTAMP")
    _add_column(cursor, "persons", "recognition_count", "INTEGER NOT NULL DEFAULT 0")
    _add_column(cursor, "persons", "is_active", "INTEGER NOT NULL DEFAULT 1")


def _add_embedding_metadata(cursor: sqlite3.Cursor) -> None:
    _add_column(cursor, "face_embeddings", "embedding_hash", "TEXT")
    _add_column(cursor, "face_embeddings", "quality_score", "REAL NOT NULL DEFAULT 0.0")
    _add_column(cursor, "face_embeddings", "is_primary", "INTEGER NOT NULL DEFAULT 0")
    _add_column(cursor, "face_embeddings", "is_encrypted", "INTEGER NOT NULL DEFAULT 0")


def _create_indexes(cursor: sqlite3.Cursor) -> None:
    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_persons_name_hash
        ON persons(name_hash)
    """)
    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_face_embeddings_person_id
        ON face_embeddings(person_id)
    """)
    cursor.execute("""
        CREATE INDEX IF NOT EXISTS idx_audit_log_timestamp
        ON audit_log(timestamp)
    """)


def _create_store_meta(cursor: sqlite3.Cursor) -> None:
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS store_meta (
            key TEXT PRIMARY KEY,
            value INTEGER NOT NULL DEFAULT 0
        )
    """)
    cursor.execute(
        "INSERT OR IGNORE INTO store_meta (key, value) VALUES ('corpus_revision', 0)"
    )


MIGRATIONS: List[Migration] = [
    Migration(1, "base tables", _create_base_tables),
    Migration(2, "person recognition tracking", _add_person_tracking),
    Migration(3, "embedding integrity metadata", _add_embedding_metadata),
    Migration(4, "lookup indexes", _create_indexes),
    Migration(5, "corpus revision counter", _create_store_meta),
]

LATEST_VERSION = MIGRATIONS[-1].version


def get_schema_version(cursor: sqlite3.Cursor) -> int:
    """Highest applied migration version, 0 for a fresh database."""
    if not _table_exists(cursor, "schema_version"):
        return 0
    cursor.execute("SELECT MAX(version) FROM schema_version")
    row = cursor.fetchone()
    return row[0] or 0


def apply_migrations(cursor: sqlite3.Cursor, migrations: List[Migration] = MIGRATIONS) -> int:
    """Apply pending migrations inside the caller's transaction.

    Returns:
        Schema version after migration
    """
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            description TEXT,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    current = get_schema_version(cursor)

    for migration in sorted(migrations, key=lambda m: m.version):
        if migration.version <= current:
            continue
        logger.info(f"Applying schema migration {migration.version}: {migration.description}")
        migration.apply(cursor)
        cursor.execute(
            "INSERT OR IGNORE INTO schema_version (version, description) VALUES (?, ?)",
            (migration.version, migration.description),
        )
        current = migration.version

    return current
