"""Exception family raised by the face engine."""

from typing import Optional


class FaceEngineError(Exception):
    """Base class for face engine errors.

    Attributes:
        message: Human-readable description
        cause: Underlying exception, if any
        kind: Short category name shared by every instance of a subclass
    """

    kind = "engine"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message


class DetectionError(FaceEngineError):
    """Malformed input frame handed to a face detector."""
    kind = "detection"


class RecognitionError(FaceEngineError):
    """Degenerate face region or embedding generation failure."""
    kind = "recognition"


class DatabaseError(FaceEngineError):
    """Connection, transaction, or serialization failure in the store."""
    kind = "database"


class CameraError(FaceEngineError):
    """Capture device could not be acquired or read."""
    kind = "camera"
