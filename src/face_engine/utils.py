"""Face image processing utilities."""

import re
from typing import Optional, Tuple

import cv2
import numpy as np

from .constants import UNKNOWN_IDENTITY

_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\s._-]+$")

KNOWN_COLOR = (0, 255, 0)
UNKNOWN_COLOR = (0, 0, 255)


def crop_face(
    image: np.ndarray,
    bbox: Tuple[int, int, int, int],
    margin: float = 0.0,
) -> np.ndarray:
    """Crop face from image with optional margin.

    Args:
        image: Full image
        bbox: Bounding box (x, y, w, h)
        margin: Margin around face as fraction of size

    Returns:
        Cropped face image (may be empty if bbox lies outside the image)
    """
    x, y, w, h = bbox
    margin_w = int(w * margin)
    margin_h = int(h * margin)
    x1 = max(0, x - margin_w)
    y1 = max(0, y - margin_h)
    x2 = min(image.shape[1], x + w + margin_w)
    y2 = min(image.shape[0], y + h + margin_h)
    return image[y1:y2, x1:x2]


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Return a contiguous single-channel copy of a BGR, BGRA or gray image."""
    if image.ndim == 2:
        return np.ascontiguousarray(image)
    if image.shape[2] == 1:
        return np.ascontiguousarray(image[:, :, 0])
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)


def compute_face_quality(
    face_image: np.ndarray,
    sharpness_divisor: float = 500.0,
    brightness_target: float = 0.5,
    brightness_scale: float = 2.0,
) -> float:
    """Compute face image quality score.

    Args:
        face_image: Face image
        sharpness_divisor: Laplacian variance mapped to full sharpness
        brightness_target: Ideal mean brightness (0-1)
        brightness_scale: Penalty per unit of brightness deviation

    Returns:
        Quality score between 0 and 1
    """
    if face_image is None or face_image.size == 0:
        return 0.0
    gray = to_grayscale(face_image)
    laplacian_var = cv2.Laplacian(gray, cv2.CV_64F).var()
    sharpness = min(laplacian_var / sharpness_divisor, 1.0)
    brightness = gray.mean() / 255.0
    brightness_score = max(0.0, 1.0 - abs(brightness - brightness_target) * brightness_scale)
    return float((sharpness + brightness_score) / 2)


def detect_spoofing(
    face_image: np.ndarray,
    min_texture_variance: float = 200.0,
    max_edge_ratio: float = 0.3,
) -> Tuple[bool, str]:
    """Texture-based presentation attack check.

    Flags regions whose pixel variance is too low (flat printed photo) or
    whose Canny edge density is too high (screen moire).

    Returns:
        (is_spoof, reason)
    """
    gray = to_grayscale(face_image)
    if gray.dtype != np.uint8:
        gray = cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX).astype(np.uint8)

    texture_variance = float(gray.astype(np.float64).var())
    if texture_variance < min_texture_variance:
        return True, f"low texture variance {texture_variance:.1f}"

    edges = cv2.Canny(gray, 50, 150)
    edge_ratio = float(np.count_nonzero(edges)) / edges.size
    if edge_ratio > max_edge_ratio:
        return True, f"edge ratio {edge_ratio:.2f}"

    return False, ""


def annotate_frame(
    frame: np.ndarray,
    bbox: Tuple[int, int, int, int],
    identity: str,
    confidence: Optional[float] = None,
    thickness: int = 2,
) -> np.ndarray:
    """Draw a box and identity label on a copy of the frame.

    Unknown faces are drawn in red, recognized faces in green.
    """
    output = frame.copy()
    color = UNKNOWN_COLOR if identity == UNKNOWN_IDENTITY else KNOWN_COLOR
    x, y, w, h = bbox

    cv2.rectangle(output, (x, y), (x + w, y + h), color, thickness)

    label = identity
    if confidence is not None:
        label = f"{identity} ({confidence:.2f})"
    cv2.putText(
        output, label,
        (x, max(0, y - 10)),
        cv2.FONT_HERSHEY_SIMPLEX, 0.7, color, thickness
    )
    return output


def is_valid_identity_name(name: Optional[str]) -> bool:
    """Check an identity name: 2-50 letters, digits, spaces, '.', '_' or '-'."""
    if name is None:
        return False
    name = name.strip()
    if not (2 <= len(name) <= 50):
        return False
    return _NAME_PATTERN.match(name) is not None
