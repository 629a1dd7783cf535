"""Capture loop, event delivery and registration workflow."""

from .events import EventDispatcher, RecognitionEvent
from .loop import EngineState, FaceRecognitionEngine
from .registration import RegistrationWorkflow

__all__ = [
    "EngineState",
    "EventDispatcher",
    "FaceRecognitionEngine",
    "RecognitionEvent",
    "RegistrationWorkflow",
]
