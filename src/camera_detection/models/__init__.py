"""
Consolidated data models for the detection pipeline.
"""

from .detector import InferenceEngine
from .events import DetectionEvent, FrameDetection, PurgeResult, utc_now
from .tracking import BoundingBox, Prediction, TrackedObject

__all__ = [
    # Geometry
    "BoundingBox",
    # Event models
    "DetectionEvent",
    "FrameDetection",
    # Protocols
    "InferenceEngine",
    "Prediction",
    "PurgeResult",
    # Tracking models
    "TrackedObject",
    "utc_now",
]
