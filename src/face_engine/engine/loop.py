"""Capture/recognition loop with start/stop lifecycle."""

import logging
import threading
import time
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np

from ..constants import EngineSettings
from ..detection import BaseFaceDetector
from ..exceptions import CameraError, DatabaseError, DetectionError, RecognitionError
from ..recognition import FaceRecognizer, RecognitionResult
from ..sensors import Camera
from ..storage import EmbeddingStore
from ..utils import annotate_frame, crop_face
from .events import EventCallback, EventDispatcher, RecognitionEvent
from .registration import RegistrationWorkflow

logger = logging.getLogger(__name__)


class EngineState(Enum):
    """Lifecycle states of the capture loop."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class FaceRecognitionEngine:
    """Real-time face identification engine.

    A background thread pulls frames from the camera, detects faces,
    recognizes each one and publishes the best result to subscribers.
    The UI reads annotated frames with ``get_latest_frame`` on its own
    thread.

    Lifecycle: STOPPED -> STARTING -> RUNNING -> STOPPING -> STOPPED.
    ``start`` and ``stop`` are idempotent and may be called from any
    thread. The camera is held exactly while the state is RUNNING.
    """

    def __init__(
        self,
        camera: Camera,
        detector: BaseFaceDetector,
        recognizer: FaceRecognizer,
        store: EmbeddingStore,
        settings: Optional[EngineSettings] = None,
    ):
        """Initialize the engine.

        Args:
            camera: Camera arbiter owning the capture device
            detector: Face detector
            recognizer: Face recognizer
            store: Embedding store
            settings: Loop settings (defaults if None)
        """
        self.settings = settings or EngineSettings()
        self._camera = camera
        self._detector = detector
        self._recognizer = recognizer
        self._store = store

        self._registration = RegistrationWorkflow(camera, detector, recognizer, store)
        self._dispatcher = EventDispatcher(maxsize=self.settings.event_queue_size)

        # Serializes start, stop and registration against each other
        self._lifecycle_lock = threading.RLock()
        self._state_lock = threading.Lock()
        self._state = EngineState.STOPPED
        self._generation = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._frame_lock = threading.Lock()
        self._latest_frame: Optional[np.ndarray] = None
        self._latest_event: Optional[RecognitionEvent] = None

        self._stats_lock = threading.Lock()
        self._stats = {
            "frames_processed": 0,
            "faces_detected": 0,
            "recognitions": 0,
            "frame_errors": 0,
            "camera_failures": 0,
            "start_time": None,
        }

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        with self._state_lock:
            return self._state

    def is_running(self) -> bool:
        return self.state == EngineState.RUNNING

    def _set_state(self, state: EngineState) -> None:
        with self._state_lock:
            previous, self._state = self._state, state
        if previous != state:
            logger.info(f"Engine state: {previous.value} -> {state.value}")

    def start(self) -> None:
        """Acquire the camera and start the capture loop.

        Raises:
            CameraError: If the camera could not be acquired within the
                configured timeout; the engine stays STOPPED
        """
        with self._lifecycle_lock:
            with self._state_lock:
                if self._state == EngineState.RUNNING:
                    return
                self._state = EngineState.STARTING
                self._generation += 1
                generation = self._generation
            logger.info("Engine state: stopped -> starting")

            previous = self._thread
            if previous is not None and previous is not threading.current_thread():
                previous.join(timeout=self.settings.stop_timeout)

            try:
                self._camera.acquire()
            except CameraError as e:
                logger.error(f"Failed to start engine: {e}")
                self._set_state(EngineState.STOPPED)
                raise

            stop_event = threading.Event()
            self._stop_event = stop_event
            self._dispatcher.start()

            with self._stats_lock:
                self._stats["start_time"] = time.time()

            self._set_state(EngineState.RUNNING)
            self._thread = threading.Thread(
                target=self._run,
                args=(generation, stop_event),
                name="FaceRecognitionLoop",
                daemon=True,
            )
            self._thread.start()

    def stop(self) -> None:
        """Stop the capture loop and release the camera.

        The camera handle is released before this returns.
        """
        with self._lifecycle_lock:
            with self._state_lock:
                if self._state == EngineState.STOPPED:
                    return
                self._state = EngineState.STOPPING
            logger.info("Engine state: running -> stopping")

            self._stop_event.set()

            thread = self._thread
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout=self.settings.stop_timeout)
                if thread.is_alive():
                    logger.warning(
                        f"Capture thread did not exit within {self.settings.stop_timeout}s"
                    )

            self._camera.release()
            self._dispatcher.stop()
            self._set_state(EngineState.STOPPED)

    def _run(self, generation: int, stop_event: threading.Event) -> None:
        """Capture loop body, one iteration per frame."""
        consecutive_failures = 0
        interval = self.settings.frame_interval

        try:
            while not stop_event.is_set():
                started = time.monotonic()

                try:
                    frame = self._camera.read()
                except CameraError as e:
                    consecutive_failures += 1
                    self._increment("camera_failures")
                    if stop_event.is_set():
                        break
                    logger.warning(f"Camera read failed ({consecutive_failures}): {e}")
                    if consecutive_failures >= self.settings.max_consecutive_failures:
                        logger.error(
                            f"Camera failed {consecutive_failures} times in a row, stopping"
                        )
                        break
                    stop_event.wait(interval)
                    continue

                consecutive_failures = 0

                try:
                    event, annotated = self.process_frame(frame.image)
                except (DetectionError, RecognitionError, DatabaseError) as e:
                    self._increment("frame_errors")
                    logger.warning(f"Skipping frame {frame.frame_number}: {e}")
                else:
                    with self._frame_lock:
                        self._latest_frame = annotated
                        self._latest_event = event
                    self._dispatcher.publish(event)

                elapsed = time.monotonic() - started
                stop_event.wait(max(0.0, interval - elapsed))
        finally:
            self._store.release_thread_connection()
            with self._state_lock:
                current = generation == self._generation
            if current:
                self._camera.release()
                with self._state_lock:
                    if generation == self._generation and self._state == EngineState.RUNNING:
                        self._state = EngineState.STOPPED
                        logger.info("Engine state: running -> stopped")

    # -------------------------------------------------------------------------
    # Frame processing
    # -------------------------------------------------------------------------

    def process_frame(self, image: np.ndarray) -> Tuple[RecognitionEvent, np.ndarray]:
        """Detect, recognize and annotate one frame.

        Only the highest-confidence face is reported and drawn.

        Returns:
            (event, annotated frame)

        Raises:
            DetectionError: If the frame is malformed
            RecognitionError: If a face region cannot be embedded
        """
        faces = self._detector.detect(image)
        self._increment("frames_processed")

        if not faces:
            return RecognitionEvent.no_face(), image

        self._increment("faces_detected", len(faces))

        best_face = None
        best_result: Optional[RecognitionResult] = None
        for face in faces:
            region = crop_face(image, face.bbox)
            result = self._recognizer.recognize(region, self._store)
            if best_result is None or result.confidence > best_result.confidence:
                best_face, best_result = face, result

        if best_result.is_known:
            self._increment("recognitions")

        event = RecognitionEvent(
            identity=best_result.identity,
            confidence=best_result.confidence,
            face_detected=True,
            bbox=best_face.bbox,
            face_count=len(faces),
        )
        annotated = annotate_frame(image, best_face.bbox, best_result.identity, best_result.confidence)
        return event, annotated

    def get_latest_frame(self) -> Optional[np.ndarray]:
        """Most recent annotated frame, for display on the UI thread."""
        with self._frame_lock:
            return self._latest_frame

    def get_latest_event(self) -> Optional[RecognitionEvent]:
        with self._frame_lock:
            return self._latest_event

    # -------------------------------------------------------------------------
    # Registration and subscriptions
    # -------------------------------------------------------------------------

    def register_identity(self, name: str) -> bool:
        """Enroll ``name`` from one camera frame.

        While running, the frame is read between loop iterations. While
        stopped, the camera is acquired for the capture and released
        afterwards.
        """
        with self._lifecycle_lock:
            if self.is_running():
                return self._registration.register(name)

            try:
                self._camera.acquire()
            except CameraError as e:
                logger.error(f"Registration failed, camera unavailable: {e}")
                return False
            try:
                return self._registration.register(name)
            finally:
                self._camera.release()

    def subscribe(self, callback: EventCallback) -> None:
        """Register a callback for recognition events.

        Callbacks run on the dispatcher thread, never on the capture loop.
        """
        self._dispatcher.subscribe(callback)

    def unsubscribe(self, callback: EventCallback) -> bool:
        return self._dispatcher.unsubscribe(callback)

    # -------------------------------------------------------------------------
    # Statistics
    # -------------------------------------------------------------------------

    def _increment(self, key: str, amount: int = 1) -> None:
        with self._stats_lock:
            self._stats[key] += amount

    def get_stats(self) -> Dict[str, Any]:
        """Get loop statistics."""
        with self._stats_lock:
            stats = self._stats.copy()

        if stats["start_time"]:
            stats["uptime"] = time.time() - stats["start_time"]
        stats["state"] = self.state.value
        stats["events_dropped"] = self._dispatcher.dropped
        return stats

    def __enter__(self) -> "FaceRecognitionEngine":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
