"""
Inference Engine Protocol - Common interface for object detectors.

Any model wrapper (YOLO, a remote inference service, a test fake)
can implement this protocol to plug into the detection loop.
"""

from typing import Protocol

import numpy as np

from .tracking import Prediction


class InferenceEngine(Protocol):
    """
    Protocol for inference engines.

    Example:
        engine: InferenceEngine = YoloEngine("yolov8n.pt")
        predictions = engine.detect(frame)
    """

    def detect(self, frame: np.ndarray) -> list[Prediction]:
        """
        Run inference on a decoded frame.

        Args:
            frame: Pixel data as a (height, width, channels) uint8 array

        Returns:
            Predictions with boxes in the frame's pixel coordinates
        """
        ...
