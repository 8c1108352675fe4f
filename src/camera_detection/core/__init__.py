"""
Core detection components.

Frame source supervision, frame extraction, the detection loop, and
object tracking. The YOLO engine lives in core.inference and the
pipeline wiring in core.pipeline; both are imported on demand.
"""

from .camera import FrameSource, build_ffmpeg_args, resolve_camera_url
from .detector import DetectionLoop, decode_frame
from .frame_extractor import FrameExtractor
from .tracker import ObjectTracker, TrackerError, iou

__all__ = [
    "DetectionLoop",
    "FrameExtractor",
    "FrameSource",
    "ObjectTracker",
    "TrackerError",
    "build_ffmpeg_args",
    "decode_frame",
    "iou",
    "resolve_camera_url",
]
