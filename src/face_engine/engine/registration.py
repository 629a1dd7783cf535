"""One-shot enrollment from a single captured frame."""

import logging

from ..detection import BaseFaceDetector
from ..exceptions import CameraError, DetectionError, RecognitionError
from ..recognition import FaceRecognizer
from ..sensors import Camera
from ..storage import EmbeddingStore
from ..utils import compute_face_quality, crop_face, is_valid_identity_name

logger = logging.getLogger(__name__)


class RegistrationWorkflow:
    """Captures one frame, embeds its first face and stores it.

    The frame is read through the Camera arbiter, so a concurrently
    running capture loop never sees its frame taken.
    """

    def __init__(
        self,
        camera: Camera,
        detector: BaseFaceDetector,
        recognizer: FaceRecognizer,
        store: EmbeddingStore,
    ):
        self.camera = camera
        self.detector = detector
        self.recognizer = recognizer
        self.store = store

    def register(self, name: str) -> bool:
        """Enroll ``name`` from the next camera frame.

        The camera must already be acquired.

        Returns:
            True if an embedding was stored. False if the name is invalid,
            no face was found, or any step failed; nothing is written then.
        """
        if not is_valid_identity_name(name):
            logger.warning(f"Invalid identity name: {name!r}")
            return False
        name = name.strip()

        try:
            frame = self.camera.read()
            faces = self.detector.detect(frame.image)
            if not faces:
                logger.warning(f"No face detected for {name}")
                return False

            region = crop_face(frame.image, faces[0].bbox)
            embedding = self.recognizer.generate_embedding(region)
        except (CameraError, DetectionError, RecognitionError) as e:
            logger.warning(f"Registration failed for {name}: {e}")
            return False

        quality = compute_face_quality(region)
        if not self.store.store_embedding(name, embedding, quality_score=quality):
            return False

        logger.info(f"Registered {name} (quality {quality:.2f})")
        return True
