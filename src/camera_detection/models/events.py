"""
Detection event models - persisted events and per-frame overlay entries.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .tracking import BoundingBox


@dataclass
class DetectionEvent:
    """
    A persisted detection: one per physically-new tracked object.

    Attributes:
        id: Opaque identifier (uuid4 string)
        timestamp: Creation time (timezone-aware, UTC)
        label: Detector label
        confidence: Confidence at first detection (0-1)
        snapshot_filename: Snapshot file under the snapshot directory, or None
        bbox: Bounding box in frame pixels
        frame_width: Width of the frame the box refers to
        frame_height: Height of the frame the box refers to
        pinned: Pinned events are never purged
    """

    id: str
    timestamp: datetime
    label: str
    confidence: float
    bbox: BoundingBox
    frame_width: int = 0
    frame_height: int = 0
    snapshot_filename: str | None = None
    pinned: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses and broadcast payloads."""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "label": self.label,
            "confidence": self.confidence,
            "snapshot_filename": self.snapshot_filename,
            "bbox": self.bbox.to_dict(),
            "frame_width": self.frame_width,
            "frame_height": self.frame_height,
            "pinned": self.pinned,
        }


@dataclass
class FrameDetection:
    """Lightweight per-cycle detection for the live overlay."""

    id: str
    label: str
    confidence: float
    bbox: BoundingBox
    frame_width: int
    frame_height: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "confidence": self.confidence,
            "bbox": self.bbox.to_dict(),
            "frame_width": self.frame_width,
            "frame_height": self.frame_height,
        }


@dataclass
class PurgeResult:
    """Summary of one retention pass."""

    cutoff: datetime
    deleted_rows: int = 0
    deleted_files: int = 0
    orphan_files: int = 0
    failed_files: list[str] = field(default_factory=list)
    compacted: bool = False


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)
