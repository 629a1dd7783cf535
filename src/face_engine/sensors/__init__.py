"""Sensor interfaces."""

from .camera import Camera, Frame, FrameSource, OpenCVFrameSource

__all__ = ["Camera", "Frame", "FrameSource", "OpenCVFrameSource"]
