"""
Tests for broadcast sinks.
"""

import unittest
from datetime import datetime, timezone
from unittest import mock

import requests

from camera_detection.broadcast import BroadcastSink, CallbackSink, LoggingSink, MultiSink
from camera_detection.broadcast.webhook import WebhookSink, with_retry
from camera_detection.models import BoundingBox, DetectionEvent, FrameDetection

EVENT = DetectionEvent(
    id="evt-1",
    timestamp=datetime(2026, 10, 19, 8, 30, tzinfo=timezone.utc),
    label="person",
    confidence=0.8,
    bbox=BoundingBox(10, 10, 50, 100),
    frame_width=640,
    frame_height=480,
)
DETECTION = FrameDetection("evt-1", "person", 0.8, BoundingBox(10, 10, 50, 100), 640, 480)


def response(status):
    resp = mock.Mock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    return resp


class TestSinks(unittest.TestCase):
    """Test in-process sinks."""

    def test_protocol(self):
        for sink in (LoggingSink(), CallbackSink(), MultiSink([]), WebhookSink("http://x")):
            self.assertIsInstance(sink, BroadcastSink)

    def test_callback_sink(self):
        new, frames = [], []
        sink = CallbackSink(on_new_object=new.append, on_frame_detections=frames.append)

        sink.emit_new_object(EVENT)
        sink.emit_frame_detections([DETECTION])

        self.assertEqual(new, [EVENT])
        self.assertEqual(frames, [[DETECTION]])

    def test_multi_sink_isolates_failures(self):
        received = []
        broken = CallbackSink(on_new_object=mock.Mock(side_effect=RuntimeError("socket closed")))
        working = CallbackSink(on_new_object=received.append)

        MultiSink([broken, working]).emit_new_object(EVENT)

        self.assertEqual(received, [EVENT])


class TestWithRetry(unittest.TestCase):
    """Test retry behavior for webhook requests."""

    @mock.patch("camera_detection.broadcast.webhook.time.sleep")
    def test_retries_server_errors(self, sleep):
        func = mock.Mock(side_effect=[response(503), response(200)])

        result = with_retry(func, max_retries=2, base_delay=1.0)

        self.assertEqual(result.status_code, 200)
        sleep.assert_called_once_with(1.0)

    @mock.patch("camera_detection.broadcast.webhook.time.sleep")
    def test_no_retry_on_client_error(self, sleep):
        func = mock.Mock(return_value=response(404))

        self.assertEqual(with_retry(func).status_code, 404)
        func.assert_called_once()
        sleep.assert_not_called()

    @mock.patch("camera_detection.broadcast.webhook.time.sleep")
    def test_network_errors_exhausted(self, sleep):
        func = mock.Mock(side_effect=requests.ConnectionError("refused"))

        with self.assertRaises(requests.ConnectionError):
            with_retry(func, max_retries=2, base_delay=0.5)
        self.assertEqual(func.call_count, 3)
        self.assertEqual([c.args[0] for c in sleep.call_args_list], [0.5, 1.0])


class TestWebhookSink(unittest.TestCase):
    """Test webhook payloads and delivery."""

    def setUp(self):
        self.session = mock.Mock()
        self.session.post.return_value = response(200)

    def test_send_posts_json(self):
        sink = WebhookSink("http://hooks/detections", session=self.session, timeout=2.0)

        self.assertTrue(sink.send({"type": "detection"}))
        self.session.post.assert_called_once_with(
            "http://hooks/detections", json={"type": "detection"}, timeout=2.0
        )

    def test_send_failure(self):
        self.session.post.return_value = response(400)
        sink = WebhookSink("http://hooks", session=self.session)

        self.assertFalse(sink.send({"type": "detection"}))

    def test_worker_delivers_queued_payloads(self):
        sink = WebhookSink("http://hooks", session=self.session, include_frame_detections=True)
        sink.start()
        sink.emit_new_object(EVENT)
        sink.emit_frame_detections([DETECTION])
        sink.stop()

        payloads = [c.kwargs["json"] for c in self.session.post.call_args_list]
        self.assertEqual(payloads[0]["type"], "detection")
        self.assertEqual(payloads[0]["event"]["id"], "evt-1")
        self.assertEqual(payloads[1]["type"], "frame-detections")
        self.assertEqual(payloads[1]["detections"][0]["label"], "person")

    def test_frame_detections_off_by_default(self):
        sink = WebhookSink("http://hooks", session=self.session)
        sink.start()
        sink.emit_frame_detections([DETECTION])
        sink.stop()

        self.session.post.assert_not_called()

    def test_full_queue_drops(self):
        sink = WebhookSink("http://hooks", session=self.session, queue_size=1)

        sink.emit_new_object(EVENT)
        sink.emit_new_object(EVENT)

        self.assertEqual(sink.dropped, 1)


if __name__ == "__main__":
    unittest.main()
