"""In-memory embedding index for nearest-neighbour matching."""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity clipped to [0, 1].

    Vectors of different length, or with zero norm, score 0.0.
    """
    a = np.asarray(a, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()

    if a.shape != b.shape:
        return 0.0

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a < 1e-10 or norm_b < 1e-10:
        return 0.0

    similarity = float(np.dot(a, b) / (norm_a * norm_b))
    return min(max(similarity, 0.0), 1.0)


@dataclass
class MatchResult:
    """Best candidate found for a query embedding."""

    identity: Optional[str]
    score: float
    candidates: int = 0


class EmbeddingIndex:
    """Thread-safe snapshot of the enrolled corpus.

    Every stored sample is an independent candidate. The best score wins;
    on an exact tie the earlier entry in stored order is kept.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._names: List[str] = []
        self._vectors: List[np.ndarray] = []
        self._revision: Any = None

    def load(self, entries: Iterable[Tuple[str, np.ndarray]], revision: Any = None) -> None:
        """Replace the index contents.

        Args:
            entries: (identity_name, vector) pairs in stored order
            revision: Store revision the entries were read at
        """
        names = []
        vectors = []
        for name, vector in entries:
            names.append(name)
            vectors.append(np.asarray(vector, dtype=np.float64).ravel())

        with self._lock:
            self._names = names
            self._vectors = vectors
            self._revision = revision

        logger.debug(f"Loaded {len(names)} embeddings into index (revision {revision})")

    def match(self, query: np.ndarray) -> MatchResult:
        """Find the best matching identity for a query vector."""
        with self._lock:
            names = self._names
            vectors = self._vectors

        best_identity = None
        best_score = 0.0

        for name, stored in zip(names, vectors):
            score = cosine_similarity(query, stored)
            if best_identity is None or score > best_score:
                best_score = score
                best_identity = name

        return MatchResult(identity=best_identity, score=best_score, candidates=len(names))

    @property
    def revision(self) -> Any:
        return self._revision

    @property
    def size(self) -> int:
        return len(self._names)

    def identities(self) -> List[str]:
        """Distinct identities in stored order."""
        with self._lock:
            return list(dict.fromkeys(self._names))
