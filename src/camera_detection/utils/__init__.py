"""
Utility modules for constants and the label vocabulary.
"""

from .constants import (
    DEFAULT_DATA_DIR,
    DEFAULT_RETENTION_DAYS,
    FRAME_END_MARKER,
    FRAME_START_MARKER,
    SNAPSHOT_SUBDIR,
)
from .labels import COCO_LABELS, DEFAULT_ENABLED_LABELS, is_known_label, unknown_labels

__all__ = [
    # Vocabulary
    "COCO_LABELS",
    "DEFAULT_DATA_DIR",
    "DEFAULT_ENABLED_LABELS",
    "DEFAULT_RETENTION_DAYS",
    "FRAME_END_MARKER",
    "FRAME_START_MARKER",
    "SNAPSHOT_SUBDIR",
    "is_known_label",
    "unknown_labels",
]
