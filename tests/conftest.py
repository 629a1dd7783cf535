"""Pytest configuration and fixtures."""

import sys
import threading
import time
from pathlib import Path

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from face_engine.constants import CameraSettings, DatabaseSettings, EngineSettings  # noqa: E402
from face_engine.detection import BaseFaceDetector, DetectedFace  # noqa: E402
from face_engine.exceptions import CameraError  # noqa: E402
from face_engine.sensors import FrameSource  # noqa: E402

FACE_BOX = (60, 40, 120, 120)


def make_frame(seed: int = 0, height: int = 240, width: int = 320) -> np.ndarray:
    """Deterministic textured BGR frame."""
    rng = np.random.RandomState(seed)
    return rng.randint(0, 255, (height, width, 3), dtype=np.uint8)


def make_live_face(seed: int = 0, size: int = 100) -> np.ndarray:
    """Smooth left-to-right ramp with mild sensor noise."""
    rng = np.random.RandomState(seed)
    ramp = np.tile(28.0 + 2.0 * np.arange(size), (size, 1))
    gray = np.clip(ramp + rng.normal(0, 4, (size, size)), 0, 255).astype(np.uint8)
    return np.dstack([gray, gray, gray])


def make_flat_face(seed: int = 0, size: int = 100) -> np.ndarray:
    """Nearly uniform mid-gray region, like a flat printed photo."""
    rng = np.random.RandomState(seed)
    gray = np.clip(128.0 + rng.normal(0, 4, (size, size)), 0, 255).astype(np.uint8)
    return np.dstack([gray, gray, gray])


class FakeFrameSource(FrameSource):
    """In-memory frame source that tracks open handles and reader overlap."""

    def __init__(self, frame=None, fail_opens=0, unavailable=False, empty_frames=False):
        self.frame = frame if frame is not None else make_frame()
        self.fail_opens = fail_opens
        self.unavailable = unavailable
        self.empty_frames = empty_frames

        self.opens = 0
        self.closes = 0
        self.grabs = 0
        self.overlap = False
        self._open_handles = set()
        self._readers = 0
        self._lock = threading.Lock()

    @property
    def active_handles(self) -> int:
        return len(self._open_handles)

    def open(self):
        with self._lock:
            if self.unavailable:
                raise CameraError("device busy")
            if self.fail_opens > 0:
                self.fail_opens -= 1
                raise CameraError("device warming up")
            self.opens += 1
            handle = object()
            self._open_handles.add(handle)
            return handle

    def grab(self, handle):
        with self._lock:
            if handle not in self._open_handles:
                raise CameraError("grab on closed handle")
            self._readers += 1
            if self._readers > 1:
                self.overlap = True
        try:
            time.sleep(0.001)
            self.grabs += 1
            return None if self.empty_frames else self.frame.copy()
        finally:
            with self._lock:
                self._readers -= 1

    def close(self, handle):
        with self._lock:
            self.closes += 1
            self._open_handles.discard(handle)


class FakeDetector(BaseFaceDetector):
    """Detector returning fixed boxes, or raising a configured error."""

    def __init__(self, boxes=None, error=None):
        self.boxes = [FACE_BOX] if boxes is None else boxes
        self.error = error
        self.calls = 0

    def detect(self, image):
        self.validate_frame(image)
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [DetectedFace(x=x, y=y, width=w, height=h) for (x, y, w, h) in self.boxes]


def wait_for(predicate, timeout: float = 3.0, interval: float = 0.01) -> bool:
    """Poll until predicate() is true or timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def sample_image():
    """Create a sample test image."""
    return np.random.randint(0, 255, (480, 640, 3), dtype=np.uint8)


@pytest.fixture
def sample_grayscale_image():
    """Create a sample grayscale test image."""
    return np.random.randint(0, 255, (480, 640), dtype=np.uint8)


@pytest.fixture
def face_frame():
    """Deterministic frame whose FACE_BOX region is used as the face."""
    return make_frame(seed=1)


@pytest.fixture
def db_settings(tmp_path):
    """Database settings pointing into a temporary directory."""
    return DatabaseSettings(path=str(tmp_path / "faces.db"))


@pytest.fixture
def store(db_settings):
    """Encrypted embedding store in a temporary directory."""
    from face_engine.storage import EmbeddingStore

    s = EmbeddingStore(db_settings.path, settings=db_settings)
    yield s
    s.close()


@pytest.fixture
def plain_store(tmp_path):
    """Embedding store with encryption disabled."""
    from face_engine.storage import EmbeddingStore

    settings = DatabaseSettings(path=str(tmp_path / "plain.db"), encryption_enabled=False)
    s = EmbeddingStore(settings.path, settings=settings)
    yield s
    s.close()


@pytest.fixture
def camera_settings():
    """Camera settings with short timeouts for tests."""
    return CameraSettings(acquire_timeout=0.3, retry_interval=0.01)


@pytest.fixture
def engine_settings():
    """Fast loop settings for tests."""
    return EngineSettings(
        frame_interval=0.005,
        max_consecutive_failures=3,
        stop_timeout=2.0,
        event_queue_size=16,
    )


@pytest.fixture
def frame_source(face_frame):
    """Fake frame source serving face_frame."""
    return FakeFrameSource(frame=face_frame)


@pytest.fixture
def camera(frame_source, camera_settings):
    """Camera arbiter over the fake frame source."""
    from face_engine.sensors import Camera

    cam = Camera(source=frame_source, settings=camera_settings)
    yield cam
    cam.release()


@pytest.fixture
def fake_detector():
    """Detector reporting FACE_BOX for every frame."""
    return FakeDetector()


@pytest.fixture
def recognizer():
    """Histogram-backed recognizer with the default threshold."""
    from face_engine.recognition import FaceRecognizer

    return FaceRecognizer(embedding_backend="histogram", threshold=0.6)


@pytest.fixture
def engine(camera, fake_detector, recognizer, store, engine_settings):
    """Engine wired to fakes; always stopped on teardown."""
    from face_engine.engine import FaceRecognitionEngine

    eng = FaceRecognitionEngine(camera, fake_detector, recognizer, store, settings=engine_settings)
    yield eng
    eng.stop()
