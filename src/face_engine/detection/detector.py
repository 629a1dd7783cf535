"""Unified face detector with configurable backend."""

from typing import List

import numpy as np

from .base import BaseFaceDetector
from .haar import HaarCascadeDetector
from .types import DetectedFace


class FaceDetector(BaseFaceDetector):
    """Main face detector class with configurable backend."""

    BACKENDS = {
        "haar_cascade": HaarCascadeDetector,
    }

    def __init__(self, backend: str = "haar_cascade", **kwargs):
        """Initialize face detector with specified backend.

        Args:
            backend: Detection backend to use (default: haar_cascade)
            **kwargs: Additional arguments for the detector
        """
        if backend not in self.BACKENDS:
            raise ValueError(
                f"Unknown backend: {backend}. "
                f"Available: {list(self.BACKENDS.keys())}"
            )

        self.backend_name = backend
        self.detector = self.BACKENDS[backend](**kwargs)

    def detect(self, image: np.ndarray) -> List[DetectedFace]:
        """Detect faces in an image."""
        return self.detector.detect(image)

    @classmethod
    def available_backends(cls) -> List[str]:
        """Return list of available detection backends."""
        return list(cls.BACKENDS.keys())
