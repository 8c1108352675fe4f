"""
Broadcast sinks - live delivery of detections to an external collaborator.

The pipeline emits two kinds of notifications:
- emit_new_object: once per newly tracked object (event feed)
- emit_frame_detections: once per detection cycle (live overlay)

Implementations:
- LoggingSink: log new objects (default when nothing else is configured)
- CallbackSink: forward to plain callables (e.g. a socket.io server)
- WebhookSink: POST JSON payloads from a background worker
"""

import logging
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from ..models import DetectionEvent, FrameDetection

logger = logging.getLogger(__name__)


@runtime_checkable
class BroadcastSink(Protocol):
    """Protocol for broadcast sinks. Implementations must not block the caller for long."""

    def emit_new_object(self, event: DetectionEvent) -> None:
        """Announce a newly tracked object."""
        ...

    def emit_frame_detections(self, detections: list[FrameDetection]) -> None:
        """Publish every matched/new object of the current cycle."""
        ...


class LoggingSink:
    """Sink that logs new objects and ignores per-frame detections."""

    def emit_new_object(self, event: DetectionEvent) -> None:
        logger.info(
            f"Detection: {event.label} ({event.confidence:.0%}) id={event.id}"
        )

    def emit_frame_detections(self, detections: list[FrameDetection]) -> None:
        if detections:
            logger.debug(f"Frame: {len(detections)} object(s)")


class CallbackSink:
    """
    Adapter that wraps callback functions as a BroadcastSink.

    Example:
        sink = CallbackSink(
            on_new_object=lambda e: io.emit("detection", e.to_dict()),
            on_frame_detections=lambda d: io.emit("frame-detections", [x.to_dict() for x in d]),
        )
    """

    def __init__(
        self,
        on_new_object: Callable[[DetectionEvent], None] | None = None,
        on_frame_detections: Callable[[list[FrameDetection]], None] | None = None,
    ):
        self._on_new_object = on_new_object
        self._on_frame_detections = on_frame_detections

    def emit_new_object(self, event: DetectionEvent) -> None:
        if self._on_new_object:
            self._on_new_object(event)

    def emit_frame_detections(self, detections: list[FrameDetection]) -> None:
        if self._on_frame_detections:
            self._on_frame_detections(detections)


class MultiSink:
    """Fan a notification out to several sinks; one failing sink does not stop the rest."""

    def __init__(self, sinks: list[BroadcastSink]):
        self.sinks = sinks

    def emit_new_object(self, event: DetectionEvent) -> None:
        for sink in self.sinks:
            try:
                sink.emit_new_object(event)
            except Exception as e:
                logger.error(f"Sink {type(sink).__name__} failed on new object: {e}")

    def emit_frame_detections(self, detections: list[FrameDetection]) -> None:
        for sink in self.sinks:
            try:
                sink.emit_frame_detections(detections)
            except Exception as e:
                logger.error(f"Sink {type(sink).__name__} failed on frame detections: {e}")


__all__ = [
    "BroadcastSink",
    "CallbackSink",
    "LoggingSink",
    "MultiSink",
]
