"""
Camera Detection

Watches a camera stream, detects objects with YOLO, tracks them across
frames so each physical object is recorded once, persists detection
events with snapshots, and ages them out on a retention schedule.

Package structure:
  core/       - Frame source, extraction, detection loop, tracking, pipeline
  storage/    - Event store, recorder, retention engine
  broadcast/  - Live notification sinks (logging, callbacks, webhook)
  config/     - Configuration loading, validation, runtime settings
  models/     - Shared data models
  utils/      - Constants and label vocabulary
"""

__version__ = "1.0.0"

from .config import Config, ConfigError, DetectionSettings, load_config
from .models import BoundingBox, DetectionEvent, FrameDetection, Prediction
from .service import DetectionService, ServiceResponse

__all__ = [
    "BoundingBox",
    # Config
    "Config",
    "ConfigError",
    # Models
    "DetectionEvent",
    # Service
    "DetectionService",
    "DetectionSettings",
    "FrameDetection",
    "Prediction",
    "ServiceResponse",
    "load_config",
]
