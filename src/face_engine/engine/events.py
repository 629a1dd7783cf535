"""Recognition events and asynchronous delivery to subscribers."""

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from ..constants import UNKNOWN_IDENTITY

logger = logging.getLogger(__name__)


@dataclass
class RecognitionEvent:
    """Per-frame outcome reported to subscribers."""

    identity: Optional[str]
    confidence: float
    face_detected: bool
    bbox: Optional[Tuple[int, int, int, int]] = None
    face_count: int = 0
    timestamp: float = field(default_factory=time.time)

    @property
    def is_known(self) -> bool:
        """Check if a face was matched to an enrolled identity."""
        return self.face_detected and self.identity not in (None, UNKNOWN_IDENTITY)

    @classmethod
    def no_face(cls) -> "RecognitionEvent":
        return cls(identity=None, confidence=0.0, face_detected=False)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "timestamp": self.timestamp,
            "identity": self.identity,
            "confidence": self.confidence,
            "face_detected": self.face_detected,
            "bbox": list(self.bbox) if self.bbox else None,
            "face_count": self.face_count,
            "is_known": self.is_known,
        }


EventCallback = Callable[[RecognitionEvent], None]


class EventDispatcher:
    """Delivers events to subscribers on a dedicated thread.

    Publishing never blocks: when the queue is full the oldest pending
    event is dropped.
    """

    def __init__(self, maxsize: int = 64):
        self._queue: "queue.Queue[RecognitionEvent]" = queue.Queue(maxsize=maxsize)
        self._callbacks: List[EventCallback] = []
        self._callbacks_lock = threading.Lock()

        self._thread: Optional[threading.Thread] = None
        self._shutdown_event = threading.Event()
        self.dropped = 0

    def subscribe(self, callback: EventCallback) -> None:
        with self._callbacks_lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)

    def unsubscribe(self, callback: EventCallback) -> bool:
        with self._callbacks_lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)
                return True
        return False

    def publish(self, event: RecognitionEvent) -> None:
        while True:
            try:
                self._queue.put_nowait(event)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except queue.Empty:
                    pass

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            if not self._shutdown_event.is_set():
                return
            if self._thread is not threading.current_thread():
                self._thread.join(timeout=1.0)

        self._shutdown_event = threading.Event()
        self._thread = threading.Thread(
            target=self._worker_loop,
            args=(self._shutdown_event,),
            name="RecognitionEventDispatcher",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float = 1.0) -> None:
        """Deliver pending events, then stop the dispatcher thread."""
        self._shutdown_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def _worker_loop(self, shutdown_event: threading.Event) -> None:
        while not shutdown_event.is_set() or not self._queue.empty():
            try:
                event = self._queue.get(timeout=0.1)
            except queue.Empty:
                continue
            self._emit_event(event)

    def _emit_event(self, event: RecognitionEvent) -> None:
        with self._callbacks_lock:
            callbacks = list(self._callbacks)

        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Event callback error: {e}", exc_info=True)
