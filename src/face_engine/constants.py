"""Centralized constants and configuration loader.

This module provides access to configuration values and sensible defaults
for the face engine. Values are loaded from config/config.yaml when
available, otherwise defaults are used.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

logger = logging.getLogger(__name__)

# Path to the default configuration file
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "config.yaml"

UNKNOWN_IDENTITY = "Unknown"


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. Uses default if None.

    Returns:
        Configuration dictionary.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    try:
        if path.exists():
            with open(path, "r") as f:
                return yaml.safe_load(f) or {}
        logger.warning(f"Config file not found: {path}")
    except Exception as e:
        logger.warning(f"Failed to load config from {path}: {e}")

    return {}


def _get_nested(config: Dict, *keys: str, default: Any = None) -> Any:
    """Get nested config value with default fallback."""
    value = config
    for key in keys:
        if isinstance(value, dict):
            value = value.get(key)
        else:
            return default
        if value is None:
            return default
    return value


# ============================================================
# Camera Constants
# ============================================================

@dataclass
class CameraSettings:
    """Camera acquisition constants."""
    device: Union[int, str] = 0
    width: int = 640
    height: int = 480
    fps: int = 30
    # Upper bound for opening the capture device
    acquire_timeout: float = 5.0
    retry_interval: float = 0.2

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "CameraSettings":
        """Create from config dictionary."""
        cam = _get_nested(config, "camera") or {}
        resolution = cam.get("resolution", [640, 480])

        return cls(
            device=cam.get("device", 0),
            width=int(resolution[0]),
            height=int(resolution[1]),
            fps=cam.get("fps", 30),
            acquire_timeout=float(cam.get("acquire_timeout", 5.0)),
            retry_interval=float(cam.get("retry_interval", 0.2)),
        )


# ============================================================
# Detection Constants
# ============================================================

@dataclass
class DetectionSettings:
    """Haar cascade detection constants."""
    backend: str = "haar_cascade"
    scale_factor: float = 1.05
    min_neighbors: int = 3
    min_size: Tuple[int, int] = (20, 20)
    max_size: Tuple[int, int] = (500, 500)
    # Second, more permissive pass when the first finds nothing
    relaxed_pass: bool = True
    relaxed_scale_factor: float = 1.03
    relaxed_min_neighbors: int = 2
    relaxed_min_size: Tuple[int, int] = (15, 15)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "DetectionSettings":
        """Create from config dictionary."""
        det = _get_nested(config, "face_detection") or {}
        relaxed = det.get("relaxed", {}) or {}

        return cls(
            backend=det.get("backend", "haar_cascade"),
            scale_factor=det.get("scale_factor", 1.05),
            min_neighbors=det.get("min_neighbors", 3),
            min_size=tuple(det.get("min_size", [20, 20])),
            max_size=tuple(det.get("max_size", [500, 500])),
            relaxed_pass=relaxed.get("enabled", True),
            relaxed_scale_factor=relaxed.get("scale_factor", 1.03),
            relaxed_min_neighbors=relaxed.get("min_neighbors", 2),
            relaxed_min_size=tuple(relaxed.get("min_size", [15, 15])),
        )


# ============================================================
# Recognition Constants
# ============================================================

@dataclass
class RecognitionSettings:
    """Face recognition constants."""
    # Minimum cosine similarity for a match (favors recall)
    threshold: float = 0.6
    embedding_backend: str = "histogram"
    # Side length faces are resized to before feature extraction
    face_size: int = 160
    # Regions smaller than this on either side cannot be embedded
    min_face_size: int = 20
    # Quality and anti-spoofing checks only run with fast_mode off
    fast_mode: bool = True
    quality_check: bool = True
    min_quality: float = 0.5
    anti_spoofing: bool = True
    # Printed photos show little texture; screens show dense edges
    spoof_min_texture_variance: float = 200.0
    spoof_max_edge_ratio: float = 0.3

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "RecognitionSettings":
        """Create from config dictionary."""
        rec = _get_nested(config, "face_recognition") or {}

        return cls(
            threshold=float(rec.get("threshold", 0.6)),
            embedding_backend=rec.get("embedding_backend", "histogram"),
            face_size=rec.get("face_size", 160),
            min_face_size=rec.get("min_face_size", 20),
            fast_mode=rec.get("fast_mode", True),
            quality_check=rec.get("quality_check", True),
            min_quality=float(rec.get("min_quality", 0.5)),
            anti_spoofing=rec.get("anti_spoofing", True),
            spoof_min_texture_variance=float(rec.get("spoof_min_texture_variance", 200.0)),
            spoof_max_edge_ratio=float(rec.get("spoof_max_edge_ratio", 0.3)),
        )


# ============================================================
# Database Constants
# ============================================================

@dataclass
class DatabaseSettings:
    """Embedding store constants."""
    path: str = "data/faces.db"
    encryption_enabled: bool = True
    # Defaults to "<path>.key" when unset
    key_path: Optional[str] = None
    audit_enabled: bool = True
    name_hashing_enabled: bool = True
    actor: str = "system"

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "DatabaseSettings":
        """Create from config dictionary."""
        db = _get_nested(config, "database") or {}
        security = db.get("security", {}) or {}

        return cls(
            path=db.get("path", "data/faces.db"),
            encryption_enabled=security.get("encryption_enabled", True),
            key_path=security.get("key_path"),
            audit_enabled=security.get("audit_enabled", True),
            name_hashing_enabled=security.get("name_hashing_enabled", True),
            actor=security.get("actor", "system"),
        )


# ============================================================
# Engine Constants
# ============================================================

@dataclass
class EngineSettings:
    """Capture loop constants."""
    # Pause between frames (seconds)
    frame_interval: float = 1.0 / 30
    max_consecutive_failures: int = 30
    stop_timeout: float = 2.0
    event_queue_size: int = 64

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "EngineSettings":
        """Create from config dictionary."""
        eng = _get_nested(config, "engine") or {}

        return cls(
            frame_interval=float(eng.get("frame_interval", 1.0 / 30)),
            max_consecutive_failures=eng.get("max_consecutive_failures", 30),
            stop_timeout=float(eng.get("stop_timeout", 2.0)),
            event_queue_size=eng.get("event_queue_size", 64),
        )


@dataclass
class LoggingSettings:
    """Logging constants."""
    level: str = "INFO"
    file: Optional[str] = None

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "LoggingSettings":
        """Create from config dictionary."""
        log = _get_nested(config, "logging") or {}
        return cls(level=str(log.get("level", "INFO")).upper(), file=log.get("file"))


# ============================================================
# Global Config Instance
# ============================================================

class Config:
    """Global configuration singleton."""

    _instance: Optional["Config"] = None
    _config: Dict[str, Any] = {}

    def __new__(cls) -> "Config":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._load()
        return cls._instance

    def _load(self, config_path: Optional[Union[str, Path]] = None) -> None:
        """Load configuration from file."""
        self._config = load_config(config_path)
        self._cache: Dict[str, Any] = {}

    def reload(self, config_path: Optional[Union[str, Path]] = None) -> None:
        """Reload configuration from file."""
        self._load(config_path)

    def _section(self, name: str, factory) -> Any:
        if name not in self._cache:
            self._cache[name] = factory.from_config(self._config)
        return self._cache[name]

    @property
    def camera(self) -> CameraSettings:
        return self._section("camera", CameraSettings)

    @property
    def detection(self) -> DetectionSettings:
        return self._section("detection", DetectionSettings)

    @property
    def recognition(self) -> RecognitionSettings:
        return self._section("recognition", RecognitionSettings)

    @property
    def database(self) -> DatabaseSettings:
        return self._section("database", DatabaseSettings)

    @property
    def engine(self) -> EngineSettings:
        return self._section("engine", EngineSettings)

    @property
    def logging(self) -> LoggingSettings:
        return self._section("logging", LoggingSettings)

    def get(self, *keys: str, default: Any = None) -> Any:
        """Get a config value by key path."""
        return _get_nested(self._config, *keys, default=default)


def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()


def get_camera_settings() -> CameraSettings:
    """Get camera settings."""
    return get_config().camera


def get_detection_settings() -> DetectionSettings:
    """Get detection settings."""
    return get_config().detection


def get_recognition_settings() -> RecognitionSettings:
    """Get recognition settings."""
    return get_config().recognition


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return get_config().database


def get_engine_settings() -> EngineSettings:
    """Get engine settings."""
    return get_config().engine
