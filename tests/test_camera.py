"""Tests for the camera arbiter."""

import threading
import time

import pytest

from conftest import FakeFrameSource


class TestCamera:
    """Test cases for Camera."""

    def test_acquire_read_release(self, camera, frame_source):
        """Test a frame can be read between acquire and release."""
        camera.acquire()
        assert camera.is_acquired

        frame = camera.read()
        assert frame.image.shape == frame_source.frame.shape
        assert frame.frame_number == 1

        assert camera.release()
        assert not camera.is_acquired
        assert frame_source.opens == frame_source.closes == 1

    def test_release_is_idempotent(self, camera, frame_source):
        """Test releasing twice closes the handle once."""
        camera.acquire()
        assert camera.release()
        assert not camera.release()
        assert frame_source.closes == 1

    def test_acquire_twice_opens_once(self, camera, frame_source):
        """Test acquiring an acquired camera is a no-op."""
        camera.acquire()
        camera.acquire()
        assert frame_source.opens == 1

    def test_read_requires_acquire(self, camera):
        """Test reading before acquire raises CameraError."""
        from face_engine.exceptions import CameraError

        with pytest.raises(CameraError):
            camera.read()

    def test_missing_frame_raises(self, camera_settings):
        """Test a source returning no frame raises CameraError."""
        from face_engine.exceptions import CameraError
        from face_engine.sensors import Camera

        camera = Camera(source=FakeFrameSource(empty_frames=True), settings=camera_settings)
        camera.acquire()
        with pytest.raises(CameraError):
            camera.read()
        camera.release()

    def test_acquire_retries_until_available(self, camera_settings):
        """Test transient open failures are retried."""
        from face_engine.sensors import Camera

        source = FakeFrameSource(fail_opens=3)
        camera = Camera(source=source, settings=camera_settings)

        camera.acquire()
        assert camera.is_acquired
        assert source.opens == 1
        camera.release()

    def test_acquire_times_out(self, camera_settings):
        """Test an unavailable camera fails within the timeout."""
        from face_engine.exceptions import CameraError
        from face_engine.sensors import Camera

        camera = Camera(source=FakeFrameSource(unavailable=True), settings=camera_settings)

        started = time.monotonic()
        with pytest.raises(CameraError) as exc_info:
            camera.acquire(timeout=0.2)
        elapsed = time.monotonic() - started

        assert 0.15 <= elapsed < 2.0
        assert exc_info.value.cause is not None
        assert not camera.is_acquired

    def test_concurrent_readers_are_serialized(self, camera, frame_source):
        """Test two threads never grab from the device at the same time."""
        camera.acquire()

        def reader():
            for _ in range(50):
                camera.read()

        threads = [threading.Thread(target=reader) for _ in range(3)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert frame_source.grabs == 150
        assert not frame_source.overlap

    def test_context_manager(self, frame_source, camera_settings):
        """Test the camera releases on leaving the context."""
        from face_engine.sensors import Camera

        with Camera(source=frame_source, settings=camera_settings) as camera:
            camera.read()
        assert frame_source.active_handles == 0
