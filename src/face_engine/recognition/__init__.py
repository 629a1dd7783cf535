"""Face recognition: embeddings, matching, and the recognizer."""

from .types import RecognitionResult
from .matcher import EmbeddingIndex, MatchResult, cosine_similarity
from .recognizer import FaceRecognizer
from .embeddings import (
    BaseEmbeddingBackend,
    HistogramEmbeddingBackend,
    OpenCVDNNEmbeddingBackend,
    EMBEDDING_BACKENDS,
    create_embedding_backend,
)

__all__ = [
    "RecognitionResult",
    "EmbeddingIndex",
    "MatchResult",
    "cosine_similarity",
    "FaceRecognizer",
    "BaseEmbeddingBackend",
    "HistogramEmbeddingBackend",
    "OpenCVDNNEmbeddingBackend",
    "EMBEDDING_BACKENDS",
    "create_embedding_backend",
]
