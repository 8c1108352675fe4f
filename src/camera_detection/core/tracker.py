"""
Object tracking by overlap.

Correlates each cycle's predictions with the objects seen in earlier
cycles so that one physical object produces one persisted event instead
of one event per frame.
"""

import itertools
import logging
import time
from collections.abc import Callable
from typing import Protocol

from ..broadcast import BroadcastSink
from ..config.settings import DetectionSettings
from ..models import BoundingBox, DetectionEvent, FrameDetection, Prediction, TrackedObject

logger = logging.getLogger(__name__)


class EventRecorderProtocol(Protocol):
    """Persists a new object and returns the stored event."""

    def record(
        self,
        prediction: Prediction,
        frame_bytes: bytes | None,
        frame_width: int,
        frame_height: int,
    ) -> DetectionEvent: ...


class TrackerError(Exception):
    """Raised after a cycle in which one or more new objects could not be recorded."""

    def __init__(self, message: str, failures: list[Exception]):
        super().__init__(message)
        self.failures = failures


def iou(a: BoundingBox, b: BoundingBox) -> float:
    """
    Intersection over union of two boxes.

    Returns 0.0 for disjoint (or degenerate) boxes and 1.0 for identical ones.
    Symmetric in its arguments.
    """
    inter_w = min(a.x + a.width, b.x + b.width) - max(a.x, b.x)
    inter_h = min(a.y + a.height, b.y + b.height) - max(a.y, b.y)
    if inter_w <= 0 or inter_h <= 0:
        return 0.0

    intersection = inter_w * inter_h
    union = a.area + b.area - intersection
    if union <= 0:
        return 0.0
    return intersection / union


class ObjectTracker:
    """
    Greedy best-IoU-first tracker.

    Predictions are matched in input order; each existing track can be
    claimed by at most one prediction per cycle. On exact IoU ties the
    earliest-created track wins, so results depend on prediction order
    when two predictions compete for the same track.

    Owned by the detection loop thread: nothing else mutates tracks.
    """

    def __init__(
        self,
        settings: DetectionSettings,
        recorder: EventRecorderProtocol,
        sink: BroadcastSink,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.recorder = recorder
        self.sink = sink
        self.clock = clock
        self.tracks: dict[int, TrackedObject] = {}
        self._track_ids = itertools.count(1)
        self.new_object_count = 0

    def update(
        self,
        predictions: list[Prediction],
        frame_bytes: bytes | None,
        frame_width: int,
        frame_height: int,
        now: float | None = None,
    ) -> list[FrameDetection]:
        """
        Run one tracking cycle.

        Args:
            predictions: Filtered predictions for this cycle
            frame_bytes: Encoded frame (snapshot source for new objects)
            frame_width: Width of the frame the boxes refer to
            frame_height: Height of the frame the boxes refer to
            now: Tracker clock time (defaults to clock())

        Returns:
            Detections for every matched or new object in this cycle

        Raises:
            TrackerError: If recording a new object failed; the cycle is
                otherwise complete (matches applied, stale tracks aged out,
                frame detections broadcast)
        """
        now = self.clock() if now is None else now
        iou_threshold = self.settings.iou_threshold
        matched: set[int] = set()
        frame_detections: list[FrameDetection] = []
        failures: list[Exception] = []

        for prediction in predictions:
            track = self._best_match(prediction, matched, iou_threshold)

            if track is not None:
                track.update(
                    prediction.bbox,
                    prediction.confidence,
                    now,
                    frame_width,
                    frame_height,
                )
                matched.add(track.track_id)
            else:
                try:
                    event = self.recorder.record(
                        prediction, frame_bytes, frame_width, frame_height
                    )
                except Exception as e:
                    logger.error(f"Failed to record new {prediction.label}: {e}")
                    failures.append(e)
                    continue
                track = self._create_track(
                    prediction, event, frame_width, frame_height, now
                )
                matched.add(track.track_id)
                self.sink.emit_new_object(event)

            frame_detections.append(
                FrameDetection(
                    id=track.event_id,
                    label=track.label,
                    confidence=track.confidence,
                    bbox=track.bbox,
                    frame_width=track.frame_width,
                    frame_height=track.frame_height,
                )
            )

        self.remove_stale(now)
        self.sink.emit_frame_detections(frame_detections)

        if failures:
            raise TrackerError(
                f"{len(failures)} new object(s) could not be recorded", failures
            )
        return frame_detections

    def remove_stale(self, now: float) -> list[TrackedObject]:
        """Drop tracks not matched within the stale timeout."""
        timeout = self.settings.stale_timeout_seconds
        stale = [t for t in self.tracks.values() if t.is_stale(now, timeout)]
        for track in stale:
            del self.tracks[track.track_id]
            logger.debug(
                f"Track {track.track_id} ({track.label}) expired after "
                f"{track.last_seen - track.first_seen:.1f}s"
            )
        return stale

    def clear(self) -> None:
        self.tracks.clear()

    def _best_match(
        self, prediction: Prediction, matched: set[int], iou_threshold: float
    ) -> TrackedObject | None:
        best: TrackedObject | None = None
        best_iou = -1.0
        for track in self.tracks.values():
            if track.track_id in matched or track.label != prediction.label:
                continue
            overlap = iou(track.bbox, prediction.bbox)
            if overlap >= iou_threshold and overlap > best_iou:
                best, best_iou = track, overlap
        return best

    def _create_track(
        self,
        prediction: Prediction,
        event: DetectionEvent,
        frame_width: int,
        frame_height: int,
        now: float,
    ) -> TrackedObject:
        track = TrackedObject(
            track_id=next(self._track_ids),
            label=prediction.label,
            bbox=prediction.bbox,
            confidence=prediction.confidence,
            first_seen=now,
            last_seen=now,
            event_id=event.id,
            frame_width=frame_width,
            frame_height=frame_height,
        )
        self.tracks[track.track_id] = track
        self.new_object_count += 1

        logger.info(
            f"New object: {event.label} ({event.confidence:.0%})"
            + (f" -> {event.snapshot_filename}" if event.snapshot_filename else "")
        )
        return track
