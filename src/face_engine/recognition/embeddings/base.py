"""Base class for face embedding backends."""

from abc import ABC, abstractmethod

import numpy as np


class BaseEmbeddingBackend(ABC):
    """Abstract base class for face embedding extraction.

    Implementations must be deterministic: the same face image always
    yields the same vector.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the name of the embedding backend."""
        pass

    @property
    @abstractmethod
    def embedding_dim(self) -> int:
        """Return the dimensionality of the embedding vector."""
        pass

    @abstractmethod
    def extract(self, face_image: np.ndarray) -> np.ndarray:
        """Extract embedding from a face image.

        Args:
            face_image: BGR or grayscale face image (cropped)

        Returns:
            Embedding vector as a 1-D float64 array

        Raises:
            RecognitionError: If the image cannot be embedded
        """
        pass
