"""
Tracking data models - bounding boxes, predictions, and tracked objects.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in frame pixel coordinates (top-left origin)."""

    x: float
    y: float
    width: float
    height: float

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float) -> "BoundingBox":
        """Build from corner coordinates."""
        return cls(x=float(x1), y=float(y1), width=float(x2 - x1), height=float(y2 - y1))

    @classmethod
    def from_list(cls, values) -> "BoundingBox":
        """Build from an [x, y, width, height] sequence."""
        x, y, width, height = values
        return cls(x=float(x), y=float(y), width=float(width), height=float(height))

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class Prediction:
    """One inference result: label, confidence (0-1) and box."""

    label: str
    confidence: float
    bbox: BoundingBox


@dataclass
class TrackedObject:
    """
    Represents a tracked object with its state across frames.

    Attributes:
        track_id: Ephemeral tracking identifier (not the persisted event id)
        label: Detector label
        bbox: Current bounding box
        confidence: Confidence from the most recent match
        first_seen: Tracker clock time of the first detection
        last_seen: Tracker clock time of the most recent match
        event_id: Id of the DetectionEvent persisted for this object
        frame_width: Width of the frame the box refers to
        frame_height: Height of the frame the box refers to
    """

    track_id: int
    label: str
    bbox: BoundingBox
    confidence: float
    first_seen: float
    last_seen: float
    event_id: str
    frame_width: int
    frame_height: int

    def update(
        self,
        bbox: BoundingBox,
        confidence: float,
        seen_at: float,
        frame_width: int,
        frame_height: int,
    ) -> None:
        """Refresh state from a matching prediction."""
        self.bbox = bbox
        self.confidence = confidence
        self.last_seen = seen_at
        self.frame_width = frame_width
        self.frame_height = frame_height

    def is_stale(self, now: float, timeout: float) -> bool:
        """True once the object has gone unmatched for longer than timeout."""
        return now - self.last_seen > timeout
