"""Base face detector interface."""

from abc import ABC, abstractmethod
from typing import List

import numpy as np

from ..exceptions import DetectionError
from .types import DetectedFace


class BaseFaceDetector(ABC):
    """Abstract base class for face detectors.

    Detectors are stateless from the caller's point of view. An empty
    list means no face was found and is not an error.
    """

    @abstractmethod
    def detect(self, image: np.ndarray) -> List[DetectedFace]:
        """Detect faces in an image.

        Args:
            image: BGR or grayscale image as numpy array

        Returns:
            List of DetectedFace objects in image coordinates

        Raises:
            DetectionError: If the image is malformed
        """
        pass

    @staticmethod
    def validate_frame(image: np.ndarray) -> None:
        """Raise DetectionError unless image is a usable 2-D or 3-D frame."""
        if image is None or not isinstance(image, np.ndarray):
            raise DetectionError("Frame is missing or not an array")
        if image.ndim not in (2, 3):
            raise DetectionError(f"Frame must be 2-D or 3-D, got {image.ndim} dimensions")
        if image.shape[0] == 0 or image.shape[1] == 0:
            raise DetectionError(f"Frame has zero dimensions: {image.shape}")
        if image.ndim == 3 and image.shape[2] not in (1, 3, 4):
            raise DetectionError(f"Unsupported channel count: {image.shape[2]}")
