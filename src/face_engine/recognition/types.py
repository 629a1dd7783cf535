"""Recognition result data type."""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..constants import UNKNOWN_IDENTITY


@dataclass
class RecognitionResult:
    """Result of matching one face against the enrolled corpus.

    For an unknown face ``confidence`` is still the best score achieved,
    so 0.0 means there were no candidates at all.
    """

    identity: str
    confidence: float
    embedding: Optional[np.ndarray] = None

    @property
    def is_known(self) -> bool:
        """Check if the face matched an enrolled identity."""
        return self.identity != UNKNOWN_IDENTITY

    @classmethod
    def unknown(cls, confidence: float = 0.0, embedding: Optional[np.ndarray] = None) -> "RecognitionResult":
        return cls(identity=UNKNOWN_IDENTITY, confidence=confidence, embedding=embedding)
