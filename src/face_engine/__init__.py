"""Real-time face identification engine.

Detects faces in camera frames, matches them against an encrypted
SQLite embedding store and reports the best match to subscribers.
"""

__version__ = "0.1.0"

from .exceptions import (
    FaceEngineError,
    DetectionError,
    RecognitionError,
    DatabaseError,
    CameraError,
)
from .detection import DetectedFace, FaceDetector, HaarCascadeDetector
from .recognition import FaceRecognizer, RecognitionResult
from .storage import EmbeddingStore
from .sensors import Camera, FrameSource, OpenCVFrameSource
from .engine import EngineState, FaceRecognitionEngine, RecognitionEvent, RegistrationWorkflow

__all__ = [
    "FaceEngineError",
    "DetectionError",
    "RecognitionError",
    "DatabaseError",
    "CameraError",
    "DetectedFace",
    "FaceDetector",
    "HaarCascadeDetector",
    "FaceRecognizer",
    "RecognitionResult",
    "EmbeddingStore",
    "Camera",
    "FrameSource",
    "OpenCVFrameSource",
    "EngineState",
    "FaceRecognitionEngine",
    "RecognitionEvent",
    "RegistrationWorkflow",
]
