"""
Tests for the detection loop (decode, filter, hand-off to the tracker).
"""

import time
import unittest
from unittest import mock

import cv2
import numpy as np

from camera_detection.core.detector import DetectionLoop, decode_frame
from camera_detection.core.tracker import ObjectTracker

from fakes import FakeEngine, FakeRecorder, FakeSink, make_settings, person


def encode_jpeg(width=320, height=240) -> bytes:
    image = np.zeros((height, width, 3), dtype=np.uint8)
    image[:, : width // 2] = (0, 128, 255)
    ok, buffer = cv2.imencode(".jpg", image)
    assert ok
    return buffer.tobytes()


class FrameSlot:
    """Stands in for FrameSource.latest."""

    def __init__(self):
        self.sequence = 0
        self.frame = None

    def publish(self, frame_bytes):
        self.sequence += 1
        self.frame = frame_bytes

    def __call__(self):
        return self.sequence, self.frame


class TestDecodeFrame(unittest.TestCase):
    """Test JPEG decoding to fit inside the working resolution."""

    def test_scales_up_to_working_resolution(self):
        image = decode_frame(encode_jpeg(320, 240), 640, 480)
        self.assertEqual(image.shape, (480, 640, 3))

    def test_wide_frame_keeps_aspect_ratio(self):
        image = decode_frame(encode_jpeg(1280, 720), 640, 480)
        self.assertEqual(image.shape, (360, 640, 3))

    def test_tall_frame_keeps_aspect_ratio(self):
        image = decode_frame(encode_jpeg(480, 960), 640, 480)
        self.assertEqual(image.shape, (480, 240, 3))

    def test_matching_size_kept(self):
        image = decode_frame(encode_jpeg(640, 480), 640, 480)
        self.assertEqual(image.shape, (480, 640, 3))

    def test_invalid_bytes(self):
        with self.assertRaises(ValueError):
            decode_frame(b"\xff\xd8not really a jpeg\xff\xd9")


class TestDetectionLoopCycle(unittest.TestCase):
    """Test single detection cycles."""

    def setUp(self):
        self.slot = FrameSlot()
        self.recorder = FakeRecorder()
        self.sink = FakeSink()
        self.settings = make_settings(enabled_labels=frozenset({"person"}))
        self.tracker = ObjectTracker(self.settings, self.recorder, self.sink)
        self.engine = FakeEngine()
        self.loop = DetectionLoop(
            self.slot, self.engine, self.tracker, self.settings, 640, 480
        )

    def test_no_frame_skips_inference(self):
        self.assertIsNone(self.loop.run_cycle())
        self.assertEqual(self.engine.frames, [])
        self.assertEqual(self.sink.frames, [])

    def test_filters_predictions(self):
        self.engine.predictions = [
            person(10, 10, 50, 100, confidence=0.8),
            person(200, 10, 50, 100, confidence=0.59),  # below threshold
            person(400, 10, 50, 100, confidence=0.9, label="car"),  # not enabled
            person(300, 200, 50, 100, confidence=0.6),  # threshold is inclusive
        ]
        self.slot.publish(encode_jpeg())

        accepted = self.loop.run_cycle()

        self.assertEqual([p.confidence for p in accepted], [0.8, 0.6])
        self.assertEqual(len(self.recorder.recorded), 2)
        self.assertEqual(self.engine.frames[0].shape, (480, 640, 3))
        self.assertEqual(self.recorder.recorded[0].frame_width, 640)

    def test_settings_changes_apply_next_cycle(self):
        self.engine.predictions = [person(10, 10, 50, 100, label="car")]
        self.slot.publish(encode_jpeg())
        self.assertEqual(self.loop.run_cycle(), [])

        self.settings.enabled_labels = frozenset({"person", "car"})
        self.slot.publish(encode_jpeg())
        self.assertEqual(len(self.loop.run_cycle()), 1)

    def test_reports_decoded_frame_size(self):
        self.engine.predictions = [person(10, 10, 50, 100)]
        self.slot.publish(encode_jpeg(1280, 720))

        self.loop.run_cycle()

        self.assertEqual(self.engine.frames[0].shape, (360, 640, 3))
        self.assertEqual(self.recorder.recorded[0].frame_width, 640)
        self.assertEqual(self.recorder.recorded[0].frame_height, 360)

    def test_same_frame_not_processed_twice(self):
        self.slot.publish(encode_jpeg())
        self.loop.run_cycle()
        self.assertIsNone(self.loop.run_cycle())
        self.assertEqual(len(self.engine.frames), 1)

    def test_bad_frame_is_skipped(self):
        self.slot.publish(b"\xff\xd8garbage\xff\xd9")

        accepted = self.loop.run_cycle()

        self.assertEqual(accepted, [])
        self.assertEqual(self.engine.frames, [])
        self.assertEqual(self.loop.failed_frames, 1)

        # Next good frame still processed
        self.engine.predictions = [person(10, 10, 50, 100)]
        self.slot.publish(encode_jpeg())
        self.assertEqual(len(self.loop.run_cycle()), 1)

    def test_inference_error_is_skipped(self):
        self.engine.error = RuntimeError("CUDA out of memory")
        self.slot.publish(encode_jpeg())

        self.assertEqual(self.loop.run_cycle(), [])
        self.assertEqual(self.loop.failed_frames, 1)

    def test_tracker_error_does_not_escape(self):
        self.recorder.fail_labels = {"person"}
        self.engine.predictions = [person(10, 10, 50, 100)]
        self.slot.publish(encode_jpeg())

        accepted = self.loop.run_cycle()

        self.assertEqual(len(accepted), 1)
        self.assertEqual(self.tracker.tracks, {})


class ManualClock:
    """Monotonic clock that only moves when advanced."""

    def __init__(self):
        self.now = 100.0

    def advance(self, seconds):
        self.now += seconds

    def __call__(self):
        return self.now


class TimedEngine(FakeEngine):
    """Engine whose inference takes a fixed time on a ManualClock."""

    def __init__(self, clock, duration):
        super().__init__()
        self.clock = clock
        self.duration = duration

    def detect(self, frame):
        self.clock.advance(self.duration)
        return super().detect(frame)


class SingleCycleEvent:
    """Stop event that records the wait and stops the loop after it."""

    def __init__(self):
        self.waits = []
        self._set = False

    def is_set(self):
        return self._set

    def set(self):
        self._set = True

    def wait(self, timeout=None):
        self.waits.append(timeout)
        self._set = True
        return True


class TestDetectionLoopRate(unittest.TestCase):
    """Test the per-cycle wait that caps the detection rate."""

    def run_one_cycle(self, inference_seconds, publish=True):
        clock = ManualClock()
        settings = make_settings(target_fps=2.0)
        slot = FrameSlot()
        if publish:
            slot.publish(encode_jpeg())
        tracker = ObjectTracker(settings, FakeRecorder(), FakeSink(), clock=clock)
        loop = DetectionLoop(
            slot, TimedEngine(clock, inference_seconds), tracker, settings, clock=clock
        )
        stop_event = SingleCycleEvent()

        with mock.patch.object(loop, "_stop_event", stop_event):
            loop.run()

        self.assertEqual(loop.cycles, 1)
        return stop_event.waits

    def test_fast_cycle_waits_remaining_interval(self):
        waits = self.run_one_cycle(0.1)
        self.assertEqual(len(waits), 1)
        self.assertAlmostEqual(waits[0], 0.4)

    def test_slow_cycle_does_not_wait(self):
        self.assertEqual(self.run_one_cycle(0.8), [0.0])

    def test_cycle_exactly_at_interval_does_not_wait(self):
        self.assertEqual(self.run_one_cycle(0.5), [0.0])

    def test_idle_cycle_waits_full_interval(self):
        self.assertEqual(self.run_one_cycle(0.3, publish=False), [0.5])


class TestDetectionLoopThread(unittest.TestCase):
    """Test start/stop of the loop thread."""

    def test_start_and_stop(self):
        settings = make_settings(target_fps=20.0)
        tracker = ObjectTracker(settings, FakeRecorder(), FakeSink())
        loop = DetectionLoop(FrameSlot(), FakeEngine(), tracker, settings)

        loop.start()
        self.assertTrue(loop.is_running)
        deadline = time.monotonic() + 2.0
        while loop.cycles == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        loop.stop(timeout=2.0)

        self.assertFalse(loop.is_running)
        self.assertGreaterEqual(loop.cycles, 1)


if __name__ == "__main__":
    unittest.main()
