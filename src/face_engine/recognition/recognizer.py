"""Face recognizer: embedding generation and matching against the store."""

import logging
import threading
from typing import Optional, Union

import numpy as np

from ..constants import RecognitionSettings
from ..exceptions import RecognitionError
from ..utils import compute_face_quality, detect_spoofing
from .embeddings import BaseEmbeddingBackend, create_embedding_backend
from .matcher import EmbeddingIndex
from .types import RecognitionResult

logger = logging.getLogger(__name__)


class FaceRecognizer:
    """Turns face regions into embeddings and matches them against a store.

    The store is any object offering ``revision``, ``get_all_embeddings()``
    and ``record_recognition(name)`` (see ``EmbeddingStore``). The in-memory
    index is rebuilt whenever the store's revision changes.
    """

    def __init__(
        self,
        embedding_backend: Optional[Union[str, BaseEmbeddingBackend]] = None,
        threshold: Optional[float] = None,
        settings: Optional[RecognitionSettings] = None,
    ):
        """Initialize face recognizer.

        Args:
            embedding_backend: Backend name or instance (settings default if None)
            threshold: Minimum similarity for a match, 0.0 to 1.0
            settings: Recognition settings (defaults if None)
        """
        self.settings = settings or RecognitionSettings()

        if embedding_backend is None:
            embedding_backend = self.settings.embedding_backend
        if isinstance(embedding_backend, str):
            embedding_backend = create_embedding_backend(
                embedding_backend, face_size=self.settings.face_size
            )
        self._embedder = embedding_backend

        self._threshold = 0.0
        self.threshold = self.settings.threshold if threshold is None else threshold

        self._index = EmbeddingIndex()
        self._refresh_lock = threading.Lock()
        self._last_confidence = 0.0

    @property
    def threshold(self) -> float:
        """Acceptance threshold for a match."""
        return self._threshold

    @threshold.setter
    def threshold(self, value: float) -> None:
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"Threshold must be between 0 and 1, got {value}")
        self._threshold = float(value)

    @property
    def embedding_backend(self) -> str:
        return self._embedder.name

    @property
    def embedding_dim(self) -> int:
        return self._embedder.embedding_dim

    @property
    def last_recognition_confidence(self) -> float:
        return self._last_confidence

    def get_last_recognition_confidence(self) -> float:
        """Confidence of the most recent recognize call."""
        return self._last_confidence

    def generate_embedding(self, face_region: np.ndarray) -> np.ndarray:
        """Generate an embedding for a cropped face.

        With ``fast_mode`` off, regions below ``min_quality`` or flagged by
        the anti-spoofing check are rejected before extraction.

        Raises:
            RecognitionError: If the region is missing, too small, degenerate,
                of low quality or a likely spoof
        """
        if face_region is None or not isinstance(face_region, np.ndarray) or face_region.size == 0:
            raise RecognitionError("Face region is empty")

        height, width = face_region.shape[:2]
        min_size = self.settings.min_face_size
        if height < min_size or width < min_size:
            raise RecognitionError(
                f"Face region {width}x{height} is smaller than {min_size}x{min_size}"
            )

        if not self.settings.fast_mode:
            self._check_liveness(face_region)

        return self._embedder.extract(face_region)

    def _check_liveness(self, face_region: np.ndarray) -> None:
        s = self.settings

        if s.quality_check:
            quality = compute_face_quality(face_region)
            if quality < s.min_quality:
                raise RecognitionError(
                    f"Face quality {quality:.2f} is below {s.min_quality:.2f}"
                )

        if s.anti_spoofing:
            is_spoof, reason = detect_spoofing(
                face_region,
                min_texture_variance=s.spoof_min_texture_variance,
                max_edge_ratio=s.spoof_max_edge_ratio,
            )
            if is_spoof:
                logger.warning(f"Potential spoofing attempt detected: {reason}")
                raise RecognitionError(f"Face region rejected as a likely spoof ({reason})")

    def recognize(self, face_region: np.ndarray, store) -> RecognitionResult:
        """Recognize a cropped face against the store.

        An empty store yields Unknown with confidence 0.0 without
        embedding the region.
        """
        self._refresh_index(store)

        if self._index.size == 0:
            self._last_confidence = 0.0
            return RecognitionResult.unknown()

        embedding = self.generate_embedding(face_region)
        return self._match(embedding, store)

    def recognize_embedding(self, embedding: np.ndarray, store) -> RecognitionResult:
        """Recognize a precomputed embedding against the store."""
        self._refresh_index(store)
        return self._match(np.asarray(embedding, dtype=np.float64).ravel(), store)

    def _match(self, embedding: np.ndarray, store) -> RecognitionResult:
        match = self._index.match(embedding)
        self._last_confidence = match.score

        if match.identity is not None and match.score >= self._threshold:
            store.record_recognition(match.identity)
            logger.debug(f"Recognized {match.identity} ({match.score:.3f})")
            return RecognitionResult(
                identity=match.identity,
                confidence=match.score,
                embedding=embedding,
            )

        return RecognitionResult.unknown(confidence=match.score, embedding=embedding)

    def _refresh_index(self, store) -> None:
        revision = (id(store), store.revision)
        if self._index.revision == revision:
            return

        with self._refresh_lock:
            if self._index.revision == revision:
                return
            self._index.load(store.get_all_embeddings(), revision)
            logger.info(f"Refreshed recognition index: {self._index.size} embeddings")
