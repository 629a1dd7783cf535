"""Face embedding backends.

Embedding backends extract numerical representations (embeddings) from face images
for comparison and recognition.
"""

from .base import BaseEmbeddingBackend
from .histogram import HistogramEmbeddingBackend
from .opencv_dnn import OpenCVDNNEmbeddingBackend

EMBEDDING_BACKENDS = {
    "histogram": HistogramEmbeddingBackend,
    "opencv_dnn": OpenCVDNNEmbeddingBackend,
}


def create_embedding_backend(backend: str, face_size: int = 160) -> BaseEmbeddingBackend:
    """Create embedding backend by name.

    Raises:
        ValueError: If the backend name is not registered
    """
    name = backend.lower()
    if name not in EMBEDDING_BACKENDS:
        raise ValueError(
            f"Unknown embedding backend: {backend}. "
            f"Available: {list(EMBEDDING_BACKENDS.keys())}"
        )

    backend_class = EMBEDDING_BACKENDS[name]
    if backend_class is HistogramEmbeddingBackend:
        return backend_class(face_size=face_size)
    return backend_class()


__all__ = [
    "BaseEmbeddingBackend",
    "HistogramEmbeddingBackend",
    "OpenCVDNNEmbeddingBackend",
    "EMBEDDING_BACKENDS",
    "create_embedding_backend",
]
