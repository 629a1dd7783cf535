"""Binary serialization of embedding vectors."""

import numpy as np

from ..exceptions import DatabaseError

# Little-endian float64, independent of host byte order
EMBEDDING_DTYPE = np.dtype("<f8")


def serialize_embedding(embedding: np.ndarray) -> bytes:
    """Serialize embedding to bytes."""
    return np.asarray(embedding, dtype=EMBEDDING_DTYPE).ravel().tobytes()


def deserialize_embedding(data: bytes, expected_size: int) -> np.ndarray:
    """Deserialize bytes to embedding, checking the stored element count.

    Raises:
        DatabaseError: If the blob is truncated or its length disagrees
            with ``expected_size``
    """
    if data is None:
        raise DatabaseError("Embedding blob is missing")

    itemsize = EMBEDDING_DTYPE.itemsize
    if len(data) % itemsize != 0:
        raise DatabaseError(f"Embedding blob length {len(data)} is not a multiple of {itemsize}")

    count = len(data) // itemsize
    if count != expected_size:
        raise DatabaseError(
            f"Embedding size mismatch: stored {expected_size}, decoded {count}"
        )

    return np.frombuffer(data, dtype=EMBEDDING_DTYPE).astype(np.float64)
