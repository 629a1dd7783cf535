"""Histogram/texture embedding backend.

Builds a fixed-length descriptor from three blocks computed on a
contrast-normalized grayscale face:

- 256-bin intensity histogram
- 256-bin local binary pattern (LBP) histogram
- 8x8 grid of Canny edge densities

Each block is normalized to unit sum (the edge grid to unit max) and the
concatenated vector is L2-normalized, so cosine similarity compares
faces on an equal footing regardless of crop size.
"""

import logging

import cv2
import numpy as np

from ...exceptions import RecognitionError
from ...utils import to_grayscale
from .base import BaseEmbeddingBackend

logger = logging.getLogger(__name__)

# Neighbour offsets (dy, dx) in clockwise order starting top-left
_LBP_OFFSETS = [(-1, -1), (-1, 0), (-1, 1), (0, 1), (1, 1), (1, 0), (1, -1), (0, -1)]


class HistogramEmbeddingBackend(BaseEmbeddingBackend):
    """Deterministic descriptor that needs no model download (576D)."""

    HIST_BINS = 256
    LBP_BINS = 256
    EDGE_GRID = 8

    def __init__(
        self,
        face_size: int = 160,
        clahe_clip_limit: float = 3.0,
        clahe_tile_grid: int = 8,
        canny_thresholds: tuple = (50, 150),
    ):
        """Initialize histogram embedding backend.

        Args:
            face_size: Side length the face is resized to
            clahe_clip_limit: CLAHE contrast clip limit
            clahe_tile_grid: CLAHE tiles per side
            canny_thresholds: Low/high hysteresis thresholds for edges
        """
        self.face_size = face_size
        self.canny_thresholds = canny_thresholds
        self._clahe = cv2.createCLAHE(
            clipLimit=clahe_clip_limit,
            tileGridSize=(clahe_tile_grid, clahe_tile_grid),
        )

    @property
    def name(self) -> str:
        return "histogram"

    @property
    def embedding_dim(self) -> int:
        return self.HIST_BINS + self.LBP_BINS + self.EDGE_GRID * self.EDGE_GRID

    def extract(self, face_image: np.ndarray) -> np.ndarray:
        """Extract a 576D descriptor from a face image."""
        if face_image is None or face_image.size == 0:
            raise RecognitionError("Face region is empty")

        gray = self._preprocess(face_image)

        features = np.concatenate([
            self._intensity_histogram(gray),
            self._lbp_histogram(gray),
            self._edge_grid(gray),
        ])

        norm = np.linalg.norm(features)
        if not np.isfinite(norm) or norm < 1e-10:
            raise RecognitionError("Face region produced a degenerate descriptor")

        return features / norm

    def _preprocess(self, face_image: np.ndarray) -> np.ndarray:
        gray = to_grayscale(face_image)
        if gray.dtype != np.uint8:
            gray = cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)
        gray = cv2.resize(gray, (self.face_size, self.face_size))
        gray = cv2.GaussianBlur(gray, (3, 3), 0)
        return self._clahe.apply(gray)

    def _intensity_histogram(self, gray: np.ndarray) -> np.ndarray:
        hist = cv2.calcHist([gray], [0], None, [self.HIST_BINS], [0, 256]).flatten()
        return hist / max(hist.sum(), 1.0)

    def _lbp_histogram(self, gray: np.ndarray) -> np.ndarray:
        g = gray.astype(np.int16)
        center = g[1:-1, 1:-1]
        h, w = center.shape
        codes = np.zeros(center.shape, dtype=np.uint8)

        for bit, (dy, dx) in enumerate(_LBP_OFFSETS):
            neighbour = g[1 + dy:1 + dy + h, 1 + dx:1 + dx + w]
            codes |= ((neighbour >= center).astype(np.uint8) << bit)

        hist = np.bincount(codes.ravel(), minlength=self.LBP_BINS).astype(np.float64)
        return hist / max(hist.sum(), 1.0)

    def _edge_grid(self, gray: np.ndarray) -> np.ndarray:
        low, high = self.canny_thresholds
        edges = cv2.Canny(gray, low, high)
        n = self.EDGE_GRID
        cell = self.face_size // n

        grid = np.zeros(n * n, dtype=np.float64)
        for row in range(n):
            for col in range(n):
                block = edges[row * cell:(row + 1) * cell, col * cell:(col + 1) * cell]
                grid[row * n + col] = np.count_nonzero(block) / max(block.size, 1)

        peak = grid.max()
        return grid / peak if peak > 0 else grid
