"""
Event recorder - turns a newly tracked prediction into a persisted event.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from ..core.frame_saver import save_snapshot, snapshot_filename
from ..models import DetectionEvent, Prediction, utc_now
from .database import EventStore

logger = logging.getLogger(__name__)


class EventRecorder:
    """Writes the snapshot file, then inserts the event row."""

    def __init__(
        self,
        store: EventStore,
        snapshot_dir: Path,
        now: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.snapshot_dir = Path(snapshot_dir)
        self.now = now

    def record(
        self,
        prediction: Prediction,
        frame_bytes: bytes | None,
        frame_width: int,
        frame_height: int,
    ) -> DetectionEvent:
        """
        Persist a new detection.

        A snapshot write failure is logged and the event is stored without a
        snapshot. Store failures propagate to the caller.

        Args:
            prediction: The prediction that started a new track
            frame_bytes: Encoded JPEG of the frame it was seen in
            frame_width: Width of the frame the box refers to
            frame_height: Height of the frame the box refers to

        Returns:
            The stored DetectionEvent
        """
        timestamp = self.now()
        saved = None
        if frame_bytes:
            filename = snapshot_filename(prediction.label, timestamp, prediction.confidence)
            saved = save_snapshot(frame_bytes, self.snapshot_dir, filename)

        event = DetectionEvent(
            id=str(uuid.uuid4()),
            timestamp=timestamp,
            label=prediction.label,
            confidence=prediction.confidence,
            bbox=prediction.bbox,
            frame_width=frame_width,
            frame_height=frame_height,
            snapshot_filename=saved,
            pinned=False,
        )
        return self.store.insert_event(event)
