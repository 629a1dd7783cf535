"""Haar Cascade face detector."""

import logging
from typing import List, Optional

import cv2
import numpy as np

from ..constants import DetectionSettings
from ..exceptions import DetectionError
from ..utils import to_grayscale
from .base import BaseFaceDetector
from .types import DetectedFace

logger = logging.getLogger(__name__)


class HaarCascadeDetector(BaseFaceDetector):
    """Face detector using OpenCV Haar Cascades.

    Runs a second, more permissive pass when the first pass finds nothing.
    """

    def __init__(
        self,
        settings: Optional[DetectionSettings] = None,
        cascade_file: str = "haarcascade_frontalface_default.xml",
    ):
        """Initialize Haar Cascade detector.

        Args:
            settings: Detection parameters (defaults if None)
            cascade_file: Cascade XML shipped with OpenCV
        """
        self.settings = settings or DetectionSettings()

        if not hasattr(cv2, "CascadeClassifier"):
            raise DetectionError(
                f"OpenCV {cv2.__version__} has no CascadeClassifier; "
                f"install opencv-python<5 for the haar_cascade backend"
            )

        # Load pre-trained cascade
        cascade_path = cv2.data.haarcascades + cascade_file  # type: ignore
        self.cascade = cv2.CascadeClassifier(cascade_path)

        if self.cascade.empty():
            raise DetectionError(f"Failed to load cascade from {cascade_path}")

    def detect(self, image: np.ndarray) -> List[DetectedFace]:
        """Detect faces using Haar Cascade."""
        self.validate_frame(image)

        gray = to_grayscale(image)
        if gray.dtype != np.uint8:
            gray = cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
        gray = cv2.equalizeHist(gray)
        s = self.settings

        faces = self.cascade.detectMultiScale(
            gray,
            scaleFactor=s.scale_factor,
            minNeighbors=s.min_neighbors,
            minSize=tuple(s.min_size),
            maxSize=tuple(s.max_size),
        )

        if len(faces) == 0 and s.relaxed_pass:
            logger.debug("No faces on first pass, retrying with relaxed parameters")
            faces = self.cascade.detectMultiScale(
                gray,
                scaleFactor=s.relaxed_scale_factor,
                minNeighbors=s.relaxed_min_neighbors,
                minSize=tuple(s.relaxed_min_size),
                maxSize=tuple(s.max_size),
            )

        height, width = gray.shape[:2]
        detected = []
        for (x, y, w, h) in faces:
            x1, y1 = max(0, int(x)), max(0, int(y))
            x2, y2 = min(width, int(x + w)), min(height, int(y + h))
            if x2 > x1 and y2 > y1:
                detected.append(DetectedFace(x=x1, y=y1, width=x2 - x1, height=y2 - y1))

        return detected
