"""Camera capture with single-reader arbitration."""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import cv2
import numpy as np

from ..constants import CameraSettings
from ..exceptions import CameraError

logger = logging.getLogger(__name__)


@dataclass
class Frame:
    """A captured frame with metadata."""
    image: np.ndarray
    timestamp: float
    frame_number: int

    @property
    def shape(self) -> tuple:
        return self.image.shape

    @property
    def height(self) -> int:
        return self.image.shape[0]

    @property
    def width(self) -> int:
        return self.image.shape[1]


class FrameSource(ABC):
    """Driver-level frame provider.

    ``open`` returns an opaque handle, or raises CameraError when the
    device is unavailable. ``grab`` returns None when no frame is ready.
    """

    @abstractmethod
    def open(self) -> Any:
        pass

    @abstractmethod
    def grab(self, handle: Any) -> Optional[np.ndarray]:
        pass

    @abstractmethod
    def close(self, handle: Any) -> None:
        pass


class OpenCVFrameSource(FrameSource):
    """Frame source backed by cv2.VideoCapture."""

    def __init__(self, settings: Optional[CameraSettings] = None):
        self.settings = settings or CameraSettings()

    def open(self) -> cv2.VideoCapture:
        device = self.settings.device
        if isinstance(device, str) and device.isdigit():
            device = int(device)

        capture = cv2.VideoCapture(device)
        if not capture.isOpened():
            capture.release()
            raise CameraError(f"Failed to open camera device {device}")

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.settings.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.settings.height)
        capture.set(cv2.CAP_PROP_FPS, self.settings.fps)
        capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)

        logger.info(f"Opened OpenCV camera: {device}")
        return capture

    def grab(self, handle: cv2.VideoCapture) -> Optional[np.ndarray]:
        ret, image = handle.read()
        if not ret or image is None:
            return None
        return image

    def close(self, handle: cv2.VideoCapture) -> None:
        handle.release()


class Camera:
    """Exclusive owner of one capture handle.

    Every open, grab and close goes through a single lock, so the capture
    loop and the registration workflow never read the device at the same
    time.
    """

    def __init__(
        self,
        source: Optional[FrameSource] = None,
        settings: Optional[CameraSettings] = None,
    ):
        """Initialize camera.

        Args:
            source: Frame source (OpenCV device from settings if None)
            settings: Camera settings (uses defaults if None)
        """
        self.settings = settings or CameraSettings()
        self._source = source or OpenCVFrameSource(self.settings)

        self._handle: Any = None
        self._frame_count = 0
        self._lock = threading.Lock()

    @property
    def is_acquired(self) -> bool:
        return self._handle is not None

    def acquire(self, timeout: Optional[float] = None) -> None:
        """Open the device, retrying until ``timeout`` seconds have passed.

        Raises:
            CameraError: If the device could not be opened in time
        """
        if timeout is None:
            timeout = self.settings.acquire_timeout
        deadline = time.monotonic() + timeout
        last_error: Optional[BaseException] = None

        with self._lock:
            if self._handle is not None:
                return

            while True:
                try:
                    handle = self._source.open()
                except CameraError as e:
                    last_error = e
                else:
                    if handle is not None:
                        self._handle = handle
                        logger.info("Camera acquired")
                        return

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise CameraError(
                        f"Camera not available after {timeout:.1f}s", last_error
                    )
                logger.debug(f"Camera not ready, retrying ({remaining:.1f}s left)")
                time.sleep(min(self.settings.retry_interval, remaining))

    def read(self) -> Frame:
        """Grab one frame.

        Raises:
            CameraError: If the camera is not acquired or returned no frame
        """
        with self._lock:
            if self._handle is None:
                raise CameraError("Camera is not acquired")

            try:
                image = self._source.grab(self._handle)
            except CameraError:
                raise
            except Exception as e:
                raise CameraError("Error reading frame", e) from e

            if image is None:
                raise CameraError("Failed to grab frame")

            self._frame_count += 1
            return Frame(
                image=image,
                timestamp=time.time(),
                frame_number=self._frame_count,
            )

    def release(self) -> bool:
        """Close the device if held. Safe to call repeatedly.

        Returns:
            True if a handle was released
        """
        with self._lock:
            if self._handle is None:
                return False

            handle, self._handle = self._handle, None
            try:
                self._source.close(handle)
            except Exception:
                logger.warning("Error while closing camera", exc_info=True)

        logger.info("Camera released")
        return True

    def __enter__(self) -> "Camera":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
