"""Face detection backends."""

from .types import DetectedFace
from .base import BaseFaceDetector
from .haar import HaarCascadeDetector
from .detector import FaceDetector

__all__ = [
    "DetectedFace",
    "BaseFaceDetector",
    "HaarCascadeDetector",
    "FaceDetector",
]
