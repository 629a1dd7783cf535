"""SQLite embedding store with encryption at rest and an audit trail.

Provides:
- Identity and embedding persistence with cascading delete
- Transparent AES-GCM encryption of embedding payloads
- Integrity hashes for names and payloads
- Append-only audit log of mutating operations
- Versioned schema migrations applied at startup
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional, Tuple, Union

import numpy as np

from ..constants import DatabaseSettings
from ..exceptions import DatabaseError
from .codec import deserialize_embedding, serialize_embedding
from .crypto import PayloadCipher, hash_name, hash_payload
from .migrations import apply_migrations

logger = logging.getLogger(__name__)


@dataclass
class IdentityRecord:
    """Enrolled identity with its bookkeeping columns."""
    id: int
    name: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    is_active: bool = True
    recognition_count: int = 0
    last_recognized: Optional[str] = None
    embedding_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "is_active": self.is_active,
            "recognition_count": self.recognition_count,
            "last_recognized": self.last_recognized,
            "embedding_count": self.embedding_count,
        }


@dataclass
class AuditEntry:
    """One row of the audit log."""
    id: int
    operation: str
    table_name: str
    record_id: Optional[int]
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    user_info: Optional[str] = None
    timestamp: Optional[str] = None
    ip_address: Optional[str] = None


class EmbeddingStore:
    """SQLite-based embedding store with thread-safe access.

    Writes are serialized by a lock and run in ``BEGIN IMMEDIATE``
    transactions. Reads run in their own transaction so they see either
    the state before or after a concurrent write, never part of one.

    ``revision`` is a counter kept in the database and bumped inside every
    transaction that changes the corpus, so readers in any process can cache
    the embeddings and reload only when another writer commits.
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        settings: Optional[DatabaseSettings] = None,
        cipher: Optional[PayloadCipher] = None,
    ):
        """Initialize embedding store.

        Args:
            db_path: Path to SQLite database file
            settings: Security and audit settings (defaults if None)
            cipher: Payload cipher; loaded from the key file if None and
                encryption is enabled
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.settings = settings or DatabaseSettings(path=str(self.db_path))

        # Thread-local storage for connections
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._lock = threading.RLock()

        if cipher is None and self.settings.encryption_enabled:
            key_path = self.settings.key_path or f"{self.db_path}.key"
            cipher = PayloadCipher.from_key_file(key_path)
        self._cipher = cipher

        # Initialize database schema
        with self._lock:
            with self._transaction(immediate=True) as cursor:
                self.schema_version = apply_migrations(cursor)

        logger.info(
            f"Initialized embedding store at {self.db_path} "
            f"(schema v{self.schema_version}, encryption "
            f"{'on' if self._cipher else 'off'})"
        )

    # -------------------------------------------------------------------------
    # Connection handling
    # -------------------------------------------------------------------------

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        conn = getattr(self._local, "connection", None)
        if conn is None:
            try:
                conn = sqlite3.connect(
                    str(self.db_path),
                    check_same_thread=False,
                    timeout=10.0,
                    isolation_level=None,
                )
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA foreign_keys = ON")
                conn.execute("PRAGMA journal_mode = WAL")
            except sqlite3.Error as e:
                raise DatabaseError(f"Failed to open database {self.db_path}", e) from e

            self._local.connection = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    def release_thread_connection(self) -> None:
        """Close the calling thread's connection, if it has one.

        Short-lived worker threads call this on exit; the next access from
        the same thread opens a fresh connection.
        """
        conn = getattr(self._local, "connection", None)
        if conn is None:
            return
        self._local.connection = None
        with self._connections_lock:
            if conn in self._connections:
                self._connections.remove(conn)
        try:
            conn.close()
        except sqlite3.Error:
            logger.warning("Error closing connection", exc_info=True)

    @property
    def open_connections(self) -> int:
        """Number of connections currently held across all threads."""
        with self._connections_lock:
            return len(self._connections)

    @contextmanager
    def _transaction(self, immediate: bool = False) -> Generator[sqlite3.Cursor, None, None]:
        """Context manager for database transactions.

        sqlite3 errors are re-raised as DatabaseError after rollback.
        """
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            yield cursor
            cursor.execute("COMMIT")
        except sqlite3.Error as e:
            self._rollback(conn)
            raise DatabaseError("Database transaction failed", e) from e
        except BaseException:
            self._rollback(conn)
            raise
        finally:
            cursor.close()

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if conn.in_transaction:
            try:
                conn.execute("ROLLBACK")
            except sqlite3.Error:
                logger.error("Rollback failed", exc_info=True)

    def _audit(
        self,
        cursor: sqlite3.Cursor,
        operation: str,
        table_name: str,
        record_id: Optional[int],
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Append an audit row inside the caller's transaction."""
        if not self.settings.audit_enabled:
            return
        cursor.execute("""
            INSERT INTO audit_log (
                operation, table_name, record_id, old_values, new_values,
                user_info, ip_address
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            operation,
            table_name,
            record_id,
            json.dumps(old_values, default=str) if old_values is not None else None,
            json.dumps(new_values, default=str) if new_values is not None else None,
            self.settings.actor,
            "localhost",
        ))

    def _bump_revision(self, cursor: sqlite3.Cursor) -> None:
        cursor.execute(
            "UPDATE store_meta SET value = value + 1 WHERE key = 'corpus_revision'"
        )

    @property
    def revision(self) -> int:
        """Counter of committed corpus changes, shared by every process using the file."""
        with self._transaction() as cursor:
            cursor.execute("SELECT value FROM store_meta WHERE key = 'corpus_revision'")
            row = cursor.fetchone()
        return row[0] if row is not None else 0

    @property
    def encryption_enabled(self) -> bool:
        return self._cipher is not None

    # -------------------------------------------------------------------------
    # Embedding operations
    # -------------------------------------------------------------------------

    def store_embedding(
        self,
        identity_name: str,
        vector: Optional[np.ndarray],
        quality_score: float = 0.0,
    ) -> bool:
        """Enroll one embedding under an identity, creating it if needed.

        Identity creation, the embedding insert and the audit rows commit
        together or not at all.

        Args:
            identity_name: Display name (trimmed before use)
            vector: Embedding vector
            quality_score: Sample quality between 0 and 1

        Returns:
            True if the embedding was committed
        """
        name = (identity_name or "").strip()
        if not name:
            logger.warning("Refusing to store embedding with empty identity name")
            return False

        if vector is None:
            logger.warning(f"Refusing to store empty embedding for {name}")
            return False

        embedding = np.asarray(vector, dtype=np.float64).ravel()
        if embedding.size == 0:
            logger.warning(f"Refusing to store empty embedding for {name}")
            return False
        if not np.all(np.isfinite(embedding)):
            logger.warning(f"Refusing to store non-finite embedding for {name}")
            return False

        payload = serialize_embedding(embedding)
        payload_hash = hash_payload(payload)

        try:
            stored = self._cipher.encrypt(payload) if self._cipher else payload

            with self._lock:
                with self._transaction(immediate=True) as cursor:
                    person_id = self._get_or_create_person(cursor, name)

                    cursor.execute(
                        "SELECT COUNT(*) FROM face_embeddings WHERE person_id = ?",
                        (person_id,),
                    )
                    is_primary = cursor.fetchone()[0] == 0

                    cursor.execute("""
                        INSERT INTO face_embeddings (
                            person_id, embedding, embedding_size, embedding_hash,
                            quality_score, is_primary, is_encrypted
                        )
                        VALUES (?, ?, ?, ?, ?, ?, ?)
                    """, (
                        person_id,
                        stored,
                        int(embedding.size),
                        payload_hash,
                        float(quality_score),
                        int(is_primary),
                        int(self._cipher is not None),
                    ))
                    embedding_id = cursor.lastrowid

                    cursor.execute(
                        "UPDATE persons SET updated_at = CURRENT_TIMESTAMP WHERE id = ?",
                        (person_id,),
                    )
                    self._audit(cursor, "INSERT", "face_embeddings", embedding_id, new_values={
                        "person_id": person_id,
                        "embedding_size": int(embedding.size),
                        "quality_score": float(quality_score),
                        "is_primary": is_primary,
                    })
                    self._bump_revision(cursor)

        except DatabaseError as e:
            logger.error(f"Failed to store embedding for {name}: {e}", exc_info=True)
            return False

        logger.info(f"Stored embedding {embedding_id} for {name} ({embedding.size}D)")
        return True

    def _get_or_create_person(self, cursor: sqlite3.Cursor, name: str) -> int:
        cursor.execute("SELECT id FROM persons WHERE name = ?", (name,))
        row = cursor.fetchone()
        if row is not None:
            return row["id"]

        name_hash = hash_name(name) if self.settings.name_hashing_enabled else None
        cursor.execute(
            "INSERT INTO persons (name, name_hash) VALUES (?, ?)",
            (name, name_hash),
        )
        person_id = cursor.lastrowid
        self._audit(cursor, "INSERT", "persons", person_id, new_values={"name": name})
        logger.info(f"Created identity {person_id}: {name}")
        return person_id

    def _decode_row(self, row: sqlite3.Row) -> np.ndarray:
        """Decrypt, deserialize and integrity-check a face_embeddings row."""
        data = row["embedding"]

        if row["is_encrypted"]:
            if self._cipher is None:
                raise DatabaseError(
                    f"Embedding {row['id']} is encrypted but no key is configured"
                )
            data = self._cipher.decrypt(data)

        expected_hash = row["embedding_hash"]
        if expected_hash and hash_payload(data) != expected_hash:
            raise DatabaseError(f"Integrity check failed for embedding {row['id']}")

        return deserialize_embedding(data, row["embedding_size"])

    def get_embeddings(self, identity_name: str) -> List[np.ndarray]:
        """Get every embedding of an identity, oldest first.

        Returns:
            List of vectors (empty for an unknown identity)
        """
        name = (identity_name or "").strip()
        with self._transaction() as cursor:
            cursor.execute("""
                SELECT e.* FROM face_embeddings e
                JOIN persons p ON p.id = e.person_id
                WHERE p.name = ?
                ORDER BY e.created_at, e.id
            """, (name,))
            rows = cursor.fetchall()

        return [self._decode_row(row) for row in rows]

    def get_all_embeddings(self) -> List[Tuple[str, np.ndarray]]:
        """Get (identity_name, vector) for every active identity in stored order.

        Rows that fail to decrypt, deserialize or pass the integrity check
        are logged and skipped so one bad sample cannot disable matching.
        """
        with self._transaction() as cursor:
            cursor.execute("""
                SELECT p.name AS person_name, e.* FROM face_embeddings e
                JOIN persons p ON p.id = e.person_id
                WHERE p.is_active = 1
                ORDER BY e.id
            """)
            rows = cursor.fetchall()

        entries = []
        for row in rows:
            try:
                entries.append((row["person_name"], self._decode_row(row)))
            except DatabaseError as e:
                logger.error(f"Skipping unreadable embedding {row['id']} of {row['person_name']}: {e}")
        return entries

    def _count_unreadable(self, rows: List[sqlite3.Row]) -> int:
        unreadable = 0
        for row in rows:
            try:
                self._decode_row(row)
            except DatabaseError:
                unreadable += 1
        return unreadable

    # -------------------------------------------------------------------------
    # Identity operations
    # -------------------------------------------------------------------------

    def list_identities(self) -> List[str]:
        """List active identity names, sorted."""
        with self._transaction() as cursor:
            cursor.execute("SELECT name FROM persons WHERE is_active = 1 ORDER BY name")
            rows = cursor.fetchall()
        return [row["name"] for row in rows]

    def get_identity(self, identity_name: str) -> Optional[IdentityRecord]:
        """Get an identity (active or not) by name."""
        name = (identity_name or "").strip()
        with self._transaction() as cursor:
            cursor.execute("""
                SELECT p.*, COUNT(e.id) AS embedding_count FROM persons p
                LEFT JOIN face_embeddings e ON e.person_id = p.id
                WHERE p.name = ?
                GROUP BY p.id
            """, (name,))
            row = cursor.fetchone()

        if row is None:
            return None

        return IdentityRecord(
            id=row["id"],
            name=row["name"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            is_active=bool(row["is_active"]),
            recognition_count=row["recognition_count"],
            last_recognized=row["last_recognized"],
            embedding_count=row["embedding_count"],
        )

    def delete_identity(self, identity_name: str) -> bool:
        """Delete an identity and all of its embeddings atomically.

        Returns:
            True if the identity existed and was removed
        """
        name = (identity_name or "").strip()
        if not name:
            return False

        try:
            with self._lock:
                with self._transaction(immediate=True) as cursor:
                    cursor.execute("SELECT id FROM persons WHERE name = ?", (name,))
                    row = cursor.fetchone()
                    if row is None:
                        logger.warning(f"Cannot delete unknown identity: {name}")
                        return False
                    person_id = row["id"]

                    cursor.execute("DELETE FROM face_embeddings WHERE person_id = ?", (person_id,))
                    embedding_count = cursor.rowcount

                    cursor.execute("DELETE FROM persons WHERE id = ?", (person_id,))
                    if cursor.rowcount != 1:
                        raise DatabaseError(f"Identity {name} vanished during delete")

                    self._audit(cursor, "DELETE", "persons", person_id, old_values={
                        "name": name,
                        "embedding_count": embedding_count,
                        "description": f"Deleted person: {name} with {embedding_count} embeddings",
                    })
                    self._bump_revision(cursor)

        except DatabaseError as e:
            logger.error(f"Failed to delete identity {name}: {e}", exc_info=True)
            return False

        logger.info(f"Deleted identity {name} with {embedding_count} embeddings")
        return True

    def set_identity_active(self, identity_name: str, active: bool) -> bool:
        """Soft-delete or restore an identity.

        Inactive identities keep their embeddings but are excluded from
        matching and from ``list_identities``.
        """
        name = (identity_name or "").strip()
        try:
            with self._lock:
                with self._transaction(immediate=True) as cursor:
                    cursor.execute("SELECT id, is_active FROM persons WHERE name = ?", (name,))
                    row = cursor.fetchone()
                    if row is None:
                        logger.warning(f"Cannot update unknown identity: {name}")
                        return False

                    cursor.execute("""
                        UPDATE persons SET is_active = ?, updated_at = CURRENT_TIMESTAMP
                        WHERE id = ?
                    """, (int(active), row["id"]))
                    self._audit(
                        cursor, "UPDATE", "persons", row["id"],
                        old_values={"is_active": bool(row["is_active"])},
                        new_values={"is_active": bool(active)},
                    )
                    self._bump_revision(cursor)

        except DatabaseError as e:
            logger.error(f"Failed to update identity {name}: {e}", exc_info=True)
            return False

        logger.info(f"{'Activated' if active else 'Deactivated'} identity {name}")
        return True

    def record_recognition(self, identity_name: str) -> bool:
        """Increment the recognition counter and refresh last_recognized."""
        try:
            with self._lock:
                with self._transaction(immediate=True) as cursor:
                    cursor.execute("""
                        UPDATE persons
                        SET recognition_count = recognition_count + 1,
                            last_recognized = CURRENT_TIMESTAMP
                        WHERE name = ?
                    """, (identity_name,))
                    updated = cursor.rowcount == 1
        except DatabaseError as e:
            logger.error(f"Failed to record recognition for {identity_name}: {e}")
            return False
        return updated

    # -------------------------------------------------------------------------
    # Statistics and audit
    # -------------------------------------------------------------------------

    def get_stats(self) -> Dict[str, int]:
        """Get identity and embedding counts.

        ``unreadable_embedding_count`` counts stored samples that fail to
        decrypt or verify and are therefore left out of matching.
        """
        with self._transaction() as cursor:
            cursor.execute("SELECT COUNT(*) FROM persons")
            identity_count = cursor.fetchone()[0]
            cursor.execute("SELECT COUNT(*) FROM persons WHERE is_active = 1")
            active_count = cursor.fetchone()[0]
            cursor.execute("SELECT * FROM face_embeddings")
            rows = cursor.fetchall()

        return {
            "identity_count": identity_count,
            "active_identity_count": active_count,
            "embedding_count": len(rows),
            "unreadable_embedding_count": self._count_unreadable(rows),
        }

    def get_audit_log(self, limit: int = 100) -> List[AuditEntry]:
        """Get the most recent audit entries, newest first."""
        with self._transaction() as cursor:
            cursor.execute(
                "SELECT * FROM audit_log ORDER BY id DESC LIMIT ?",
                (limit,),
            )
            rows = cursor.fetchall()

        return [
            AuditEntry(
                id=row["id"],
                operation=row["operation"],
                table_name=row["table_name"],
                record_id=row["record_id"],
                old_values=json.loads(row["old_values"]) if row["old_values"] else None,
                new_values=json.loads(row["new_values"]) if row["new_values"] else None,
                user_info=row["user_info"],
                timestamp=row["timestamp"],
                ip_address=row["ip_address"],
            )
            for row in rows
        ]

    def close(self):
        """Close all database connections."""
        with self._connections_lock:
            for conn in self._connections:
                try:
                    conn.close()
                except sqlite3.Error:
                    logger.warning("Error closing connection", exc_info=True)
            self._connections.clear()
        self._local = threading.local()
        logger.info("Embedding store closed")

    def __enter__(self) -> "EmbeddingStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __len__(self) -> int:
        with self._transaction() as cursor:
            cursor.execute("SELECT COUNT(*) FROM persons")
            count = cursor.fetchone()[0]
        return count
