"""OpenCV DNN face embedding backend using OpenFace."""

import logging
import urllib.request
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from ...exceptions import RecognitionError
from .base import BaseEmbeddingBackend

logger = logging.getLogger(__name__)


class OpenCVDNNEmbeddingBackend(BaseEmbeddingBackend):
    """Face embedding using OpenFace model via OpenCV DNN (128D)."""

    MODEL_URL = (
        "https://raw.githubusercontent.com/pyannote/pyannote-data/master/openface.nn4.small2.v1.t7"
    )
    MODEL_FILENAME = "openface_nn4.small2.v1.t7"

    def __init__(
        self,
        model_path: Optional[str] = None,
        model_dir: str = "data/models",
        allow_download: bool = True,
    ):
        """Initialize OpenCV DNN embedding backend.

        Args:
            model_path: Path to OpenFace model file (.t7)
            model_dir: Directory searched for (and receiving) the model
            allow_download: Fetch the model when no local copy exists
        """
        self._net = None
        self._model_path = model_path
        self._model_dir = Path(model_dir)
        self._allow_download = allow_download
        self._initialized = False

    @property
    def name(self) -> str:
        return "opencv_dnn"

    @property
    def embedding_dim(self) -> int:
        return 128

    def _initialize(self) -> None:
        """Lazy initialization of OpenFace model."""
        if self._initialized:
            if self._net is None:
                raise RecognitionError("OpenFace model not available")
            return

        self._initialized = True

        model_locations = [
            self._model_path,
            str(self._model_dir / self.MODEL_FILENAME),
            str(Path.home() / ".face_models" / self.MODEL_FILENAME),
        ]

        model_file = None
        for loc in model_locations:
            if loc and Path(loc).exists():
                model_file = loc
                break

        if not model_file and self._allow_download:
            model_file = self._download_model(self._model_dir / self.MODEL_FILENAME)

        if not model_file:
            raise RecognitionError("OpenFace model not available")

        try:
            self._net = cv2.dnn.readNetFromTorch(model_file)
        except cv2.error as e:
            raise RecognitionError(f"Failed to load OpenFace model from {model_file}", e) from e
        logger.info(f"Loaded OpenFace model from {model_file}")

    def _download_model(self, target_path: Path) -> Optional[str]:
        """Download OpenFace model if not present."""
        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            logger.info(f"Downloading OpenFace model to {target_path}...")
            urllib.request.urlretrieve(self.MODEL_URL, str(target_path))
            logger.info("OpenFace model downloaded successfully")
            return str(target_path)
        except OSError as e:
            logger.error(f"Failed to download OpenFace model: {e}")
            return None

    def extract(self, face_image: np.ndarray) -> np.ndarray:
        """Extract 128D embedding using OpenFace."""
        if face_image is None or face_image.size == 0:
            raise RecognitionError("Face region is empty")

        self._initialize()

        if face_image.ndim == 2:
            face_image = cv2.cvtColor(face_image, cv2.COLOR_GRAY2BGR)

        try:
            blob = cv2.dnn.blobFromImage(
                face_image,
                scalefactor=1.0 / 255,
                size=(96, 96),
                mean=(0, 0, 0),
                swapRB=True,
                crop=False,
            )
            self._net.setInput(blob)
            embedding = self._net.forward().flatten().astype(np.float64)
        except cv2.error as e:
            raise RecognitionError("OpenFace embedding extraction failed", e) from e

        norm = np.linalg.norm(embedding)
        if norm < 1e-10:
            raise RecognitionError("OpenFace produced a zero embedding")

        return embedding / norm
