"""Encryption-at-rest and hashing helpers for the embedding store."""

import hashlib
import logging
import os
from pathlib import Path
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..exceptions import DatabaseError

logger = logging.getLogger(__name__)

NONCE_SIZE = 12
KEY_BITS = 256


class PayloadCipher:
    """AES-GCM cipher for embedding payloads.

    Ciphertext layout is ``nonce (12 bytes) || ciphertext || tag``.
    """

    def __init__(self, key: bytes):
        if len(key) * 8 != KEY_BITS:
            raise DatabaseError(f"Encryption key must be {KEY_BITS} bits, got {len(key) * 8}")
        self._aesgcm = AESGCM(key)

    @classmethod
    def from_key_file(cls, key_path: Union[str, Path]) -> "PayloadCipher":
        """Load the key at ``key_path``, creating it (mode 0600) if missing."""
        path = Path(key_path)

        if path.exists():
            try:
                key = path.read_bytes()
            except OSError as e:
                raise DatabaseError(f"Failed to read encryption key {path}", e) from e
            return cls(key)

        key = AESGCM.generate_key(bit_length=KEY_BITS)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(key)
        except FileExistsError:
            # Another process created it first
            return cls(path.read_bytes())
        except OSError as e:
            raise DatabaseError(f"Failed to write encryption key {path}", e) from e

        logger.info(f"Generated new encryption key at {path}")
        return cls(key)

    def encrypt(self, data: bytes) -> bytes:
        nonce = os.urandom(NONCE_SIZE)
        return nonce + self._aesgcm.encrypt(nonce, data, None)

    def decrypt(self, data: bytes) -> bytes:
        if data is None or len(data) <= NONCE_SIZE:
            raise DatabaseError("Encrypted payload is truncated")
        try:
            return self._aesgcm.decrypt(data[:NONCE_SIZE], data[NONCE_SIZE:], None)
        except InvalidTag as e:
            raise DatabaseError("Failed to decrypt embedding payload", e) from e


def hash_name(name: str) -> str:
    """SHA-256 of the normalized (trimmed, lower-cased) identity name."""
    return hashlib.sha256(name.strip().lower().encode("utf-8")).hexdigest()


def hash_payload(data: bytes) -> str:
    """SHA-256 of a serialized embedding."""
    return hashlib.sha256(data).hexdigest()
