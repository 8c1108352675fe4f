"""
Detection loop - pulls the latest frame, runs inference, feeds the tracker.

Runs at the target rate on a single thread. A bad frame or a failed
inference only costs that cycle; the loop keeps going until stopped.
"""

import logging
import threading
import time
from collections.abc import Callable

import cv2
import numpy as np

from ..config.settings import DetectionSettings
from ..models import InferenceEngine, Prediction
from ..utils.constants import (
    DEFAULT_WORKING_HEIGHT,
    DEFAULT_WORKING_WIDTH,
    STATUS_REPORT_INTERVAL,
)
from .tracker import ObjectTracker, TrackerError

logger = logging.getLogger(__name__)


def decode_frame(
    frame_bytes: bytes,
    width: int = DEFAULT_WORKING_WIDTH,
    height: int = DEFAULT_WORKING_HEIGHT,
) -> np.ndarray:
    """
    Decode JPEG bytes to BGR pixels scaled to fit inside the working resolution.

    The aspect ratio is kept, so a 16:9 frame comes out 640x360 for a
    640x480 working size. Smaller frames are scaled up.

    Raises:
        ValueError: If the bytes are not a decodable image
    """
    data = np.frombuffer(frame_bytes, dtype=np.uint8)
    image = cv2.imdecode(data, cv2.IMREAD_COLOR)
    if image is None:
        raise ValueError(f"Undecodable frame ({len(frame_bytes)} bytes)")

    frame_height, frame_width = image.shape[:2]
    scale = min(width / frame_width, height / frame_height)
    target = (max(1, round(frame_width * scale)), max(1, round(frame_height * scale)))
    if target != (frame_width, frame_height):
        interpolation = cv2.INTER_AREA if scale < 1 else cv2.INTER_LINEAR
        image = cv2.resize(image, target, interpolation=interpolation)
    return image


class DetectionLoop:
    """Fixed-rate inference loop over the latest decoded frame."""

    def __init__(
        self,
        frame_provider: Callable[[], tuple[int, bytes | None]],
        engine: InferenceEngine,
        tracker: ObjectTracker,
        settings: DetectionSettings,
        working_width: int = DEFAULT_WORKING_WIDTH,
        working_height: int = DEFAULT_WORKING_HEIGHT,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            frame_provider: Returns (sequence, frame bytes); usually FrameSource.latest
            engine: Inference engine
            tracker: Object tracker fed with each cycle's filtered predictions
            settings: Runtime settings (read every cycle)
            working_width: Inference frame width
            working_height: Inference frame height
            clock: Monotonic clock
        """
        self.frame_provider = frame_provider
        self.engine = engine
        self.tracker = tracker
        self.settings = settings
        self.working_width = working_width
        self.working_height = working_height
        self.clock = clock

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_sequence = 0

        # Stats
        self.cycles = 0
        self.frames_processed = 0
        self.failed_frames = 0
        self._inference_times: list[float] = []
        self._started_at = 0.0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_cycle(self) -> list[Prediction] | None:
        """
        Run one detection cycle.

        Returns:
            The filtered predictions handed to the tracker, or None when no
            new frame was available
        """
        self.cycles += 1
        sequence, frame_bytes = self.frame_provider()
        if frame_bytes is None or sequence == self._last_sequence:
            return None
        self._last_sequence = sequence

        predictions: list[Prediction] = []
        frame_width, frame_height = self.working_width, self.working_height
        try:
            frame = decode_frame(frame_bytes, self.working_width, self.working_height)
            frame_height, frame_width = frame.shape[:2]
            started = self.clock()
            predictions = self.engine.detect(frame)
            self._inference_times.append(self.clock() - started)
        except Exception as e:
            self.failed_frames += 1
            logger.warning(f"Skipping frame {sequence}: {e}")
            predictions = []

        self.frames_processed += 1
        settings = self.settings
        accepted = [p for p in predictions if settings.accepts(p.label, p.confidence)]

        try:
            self.tracker.update(accepted, frame_bytes, frame_width, frame_height)
        except TrackerError as e:
            logger.error(f"Tracker: {e}")

        return accepted

    def run(self) -> None:
        """Loop until stop() is called."""
        self._started_at = self.clock()
        logger.info(
            f"Detection started at {self.settings.target_fps:g} fps "
            f"({self.working_width}x{self.working_height})"
        )

        while not self._stop_event.is_set():
            cycle_start = self.clock()
            try:
                self.run_cycle()
            except Exception as e:
                logger.error(f"Detection cycle failed: {e}", exc_info=True)

            if self.cycles % STATUS_REPORT_INTERVAL == 0:
                self._log_status()

            elapsed = self.clock() - cycle_start
            self._stop_event.wait(max(0.0, self.settings.frame_interval - elapsed))

        self._log_final_stats()

    def start(self) -> None:
        if self.is_running:
            logger.warning("Detection loop is already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="detection-loop", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = 10.0) -> None:
        """Signal the loop and wait for the current cycle to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self._thread = None

    def _average_inference_ms(self) -> float:
        recent = self._inference_times[-STATUS_REPORT_INTERVAL:]
        return 1000 * sum(recent) / len(recent) if recent else 0.0

    def _log_status(self) -> None:
        elapsed = self.clock() - self._started_at
        logger.info(
            f"[{elapsed / 60:.1f}min] Cycle {self.cycles} | Frames: {self.frames_processed} | "
            f"Inference: {self._average_inference_ms():.0f}ms | "
            f"New objects: {self.tracker.new_object_count} | Tracks: {len(self.tracker.tracks)}"
        )
        del self._inference_times[:-STATUS_REPORT_INTERVAL]

    def _log_final_stats(self) -> None:
        elapsed = self.clock() - self._started_at
        logger.info("Detection stopped")
        logger.info(f"Runtime: {elapsed / 60:.1f} minutes")
        logger.info(f"Frames: {self.frames_processed} ({self.failed_frames} failed)")
        logger.info(f"New objects: {self.tracker.new_object_count}")
