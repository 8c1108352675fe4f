"""
Runtime detection settings.

Initialized from configuration at startup, then mutated through the
management boundary while the pipeline runs. The detection loop reads
it on every cycle; each field is replaced wholesale so readers never
observe a half-updated value.
"""

from dataclasses import dataclass

from .schemas import Config


@dataclass
class DetectionSettings:
    """Process-wide, runtime-mutable detection settings."""

    enabled_labels: frozenset[str]
    confidence_threshold: float
    target_fps: float
    iou_threshold: float
    stale_timeout_seconds: float
    retention_days: int

    @property
    def frame_interval(self) -> float:
        """Target seconds between detection cycles."""
        return 1.0 / self.target_fps

    def accepts(self, label: str, confidence: float) -> bool:
        """Check a prediction against the label and confidence policy."""
        return confidence >= self.confidence_threshold and label in self.enabled_labels

    @classmethod
    def from_config(cls, config: Config) -> "DetectionSettings":
        detection = config.detection
        return cls(
            enabled_labels=frozenset(detection.enabled_labels),
            confidence_threshold=detection.confidence_threshold,
            target_fps=detection.target_fps,
            iou_threshold=detection.iou_threshold,
            stale_timeout_seconds=detection.stale_timeout_seconds,
            retention_days=config.retention.days,
        )
