"""
Byte-stream frame extraction.

The decoder writes back-to-back JPEG images to stdout with no framing.
Frames are recovered by scanning for the start-of-image and end-of-image
markers. Only the most recent complete frame is kept; the pipeline
processes "latest wins", not every frame.
"""

import logging

from ..utils.constants import (
    FRAME_END_MARKER,
    FRAME_START_MARKER,
    MAX_FRAME_BUFFER_BYTES,
)

logger = logging.getLogger(__name__)


class FrameExtractor:
    """
    Extracts complete frames from an unframed, continuously appended byte stream.

    Single writer (the decoder reader thread calls feed) and single reader
    (the detection loop calls latest). The latest frame is published by
    replacing a tuple attribute, so readers never see a torn update.
    """

    def __init__(
        self,
        start_marker: bytes = FRAME_START_MARKER,
        end_marker: bytes = FRAME_END_MARKER,
        max_buffer_bytes: int = MAX_FRAME_BUFFER_BYTES,
    ):
        self.start_marker = start_marker
        self.end_marker = end_marker
        self.max_buffer_bytes = max_buffer_bytes
        self._buffer = bytearray()
        self._latest: tuple[int, bytes | None] = (0, None)
        self.frames_extracted = 0

    @property
    def latest_frame(self) -> bytes | None:
        """Most recent complete frame, or None."""
        return self._latest[1]

    def latest(self) -> tuple[int, bytes | None]:
        """Return (sequence number, frame); the sequence grows with every new frame."""
        return self._latest

    @property
    def buffered_bytes(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes) -> int:
        """
        Append a chunk and extract every complete frame it finishes.

        Args:
            chunk: Raw bytes read from the decoder

        Returns:
            Number of complete frames extracted from this chunk
        """
        buf = self._buffer
        buf.extend(chunk)
        extracted = 0

        while True:
            start = buf.find(self.start_marker)
            if start == -1:
                # Nothing useful; keep a dangling marker prefix split across chunks
                keep = self._partial_marker_suffix(buf)
                del buf[: len(buf) - keep]
                break

            end = buf.find(self.end_marker, start + len(self.start_marker))
            if end == -1:
                if start > 0:
                    del buf[:start]
                if len(buf) > self.max_buffer_bytes:
                    logger.warning(
                        f"Discarding {len(buf)} byte partial frame (no end marker)"
                    )
                    buf.clear()
                break

            frame_end = end + len(self.end_marker)
            self.frames_extracted += 1
            self._latest = (self.frames_extracted, bytes(buf[start:frame_end]))
            del buf[:frame_end]
            extracted += 1

        return extracted

    def clear_buffer(self) -> None:
        """Drop partial data (used when the decoder restarts)."""
        self._buffer.clear()

    def reset(self) -> None:
        """Drop partial data and the latest frame."""
        self._buffer.clear()
        self._latest = (self.frames_extracted, None)

    def _partial_marker_suffix(self, buf: bytearray) -> int:
        """Length of the longest buffer suffix that is a proper prefix of the start marker."""
        for size in range(min(len(self.start_marker) - 1, len(buf)), 0, -1):
            if buf[-size:] == self.start_marker[:size]:
                return size
        return 0
