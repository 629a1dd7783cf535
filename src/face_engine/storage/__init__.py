"""Persistent, encrypted embedding store."""

from .database import AuditEntry, EmbeddingStore, IdentityRecord
from .crypto import PayloadCipher, hash_name, hash_payload
from .codec import deserialize_embedding, serialize_embedding
from .migrations import LATEST_VERSION, MIGRATIONS, Migration, apply_migrations

__all__ = [
    "AuditEntry",
    "EmbeddingStore",
    "IdentityRecord",
    "PayloadCipher",
    "hash_name",
    "hash_payload",
    "deserialize_embedding",
    "serialize_embedding",
    "LATEST_VERSION",
    "MIGRATIONS",
    "Migration",
    "apply_migrations",
]
