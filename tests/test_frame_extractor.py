"""
Tests for byte-stream frame extraction.
"""

import unittest

from camera_detection.core.frame_extractor import FrameExtractor

SOI = b"\xff\xd8"
EOI = b"\xff\xd9"


def make_frame(payload: bytes) -> bytes:
    return SOI + payload + EOI


class TestFrameExtraction(unittest.TestCase):
    """Test frame boundaries and latest-frame publication."""

    def setUp(self):
        self.frame_a = make_frame(b"first-frame-payload")
        self.frame_b = make_frame(b"second-frame-payload-longer")
        self.stream = b"\x00garbage" + self.frame_a + b"\x12\x34" + self.frame_b + SOI + b"partial"

    def test_single_frame(self):
        extractor = FrameExtractor()
        count = extractor.feed(self.frame_a)

        self.assertEqual(count, 1)
        self.assertEqual(extractor.latest_frame, self.frame_a)
        self.assertEqual(extractor.buffered_bytes, 0)

    def test_latest_frame_wins(self):
        extractor = FrameExtractor()
        count = extractor.feed(self.stream)

        self.assertEqual(count, 2)
        self.assertEqual(extractor.latest_frame, self.frame_b)
        sequence, frame = extractor.latest()
        self.assertEqual(sequence, 2)
        self.assertEqual(frame, self.frame_b)

    def test_chunking_does_not_change_result(self):
        """Every split of the stream yields the same frames as one feed."""
        whole = FrameExtractor()
        whole.feed(self.stream)

        for chunk_size in (1, 2, 3, 5, 7, 16, len(self.stream)):
            with self.subTest(chunk_size=chunk_size):
                extractor = FrameExtractor()
                seen = []
                for i in range(0, len(self.stream), chunk_size):
                    if extractor.feed(self.stream[i : i + chunk_size]):
                        seen.append(extractor.latest_frame)

                self.assertEqual(seen[-1], whole.latest_frame)
                self.assertEqual(extractor.frames_extracted, whole.frames_extracted)
                self.assertIn(self.frame_a, seen)

    def test_start_marker_split_across_chunks(self):
        extractor = FrameExtractor()
        frame = make_frame(b"payload")

        extractor.feed(b"junk" + frame[:1])
        extractor.feed(frame[1:])

        self.assertEqual(extractor.latest_frame, frame)

    def test_garbage_only_is_discarded(self):
        extractor = FrameExtractor()
        count = extractor.feed(b"\x00\x01\x02 not a jpeg at all")

        self.assertEqual(count, 0)
        self.assertIsNone(extractor.latest_frame)
        self.assertEqual(extractor.buffered_bytes, 0)

    def test_partial_frame_is_not_published(self):
        extractor = FrameExtractor()
        extractor.feed(SOI + b"still arriving")

        self.assertIsNone(extractor.latest_frame)
        self.assertGreater(extractor.buffered_bytes, 0)

        extractor.feed(b" done" + EOI)
        self.assertEqual(extractor.latest_frame, SOI + b"still arriving done" + EOI)

    def test_oversized_partial_frame_is_dropped(self):
        extractor = FrameExtractor(max_buffer_bytes=32)
        extractor.feed(SOI + b"x" * 64)

        self.assertEqual(extractor.buffered_bytes, 0)
        self.assertIsNone(extractor.latest_frame)

    def test_end_marker_before_start_is_ignored(self):
        extractor = FrameExtractor()
        extractor.feed(EOI + self.frame_a)

        self.assertEqual(extractor.latest_frame, self.frame_a)


class TestFrameExtractorReset(unittest.TestCase):
    """Test buffer clearing on decoder restart and stop."""

    def test_clear_buffer_keeps_latest(self):
        extractor = FrameExtractor()
        frame = make_frame(b"kept")
        extractor.feed(frame + SOI + b"half")

        extractor.clear_buffer()

        self.assertEqual(extractor.buffered_bytes, 0)
        self.assertEqual(extractor.latest_frame, frame)

    def test_reset_drops_latest_but_keeps_sequence(self):
        extractor = FrameExtractor()
        extractor.feed(make_frame(b"one") + make_frame(b"two"))

        extractor.reset()

        sequence, frame = extractor.latest()
        self.assertIsNone(frame)
        self.assertEqual(sequence, 2)

        extractor.feed(make_frame(b"three"))
        self.assertEqual(extractor.latest()[0], 3)


if __name__ == "__main__":
    unittest.main()
