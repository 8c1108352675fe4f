"""
YOLO inference engine.

Kept out of core/__init__ so that importing the pipeline does not pull in
ultralytics until a model is actually needed.
"""

import os

os.environ["QT_QPA_PLATFORM"] = "offscreen"

import logging

import numpy as np
import torch
from ultralytics import YOLO

from ..models import BoundingBox, Prediction

logger = logging.getLogger(__name__)


class YoloEngine:
    """InferenceEngine backed by an ultralytics YOLO model."""

    def __init__(self, model_file: str, confidence_floor: float = 0.25):
        """
        Args:
            model_file: Path or hub name of the .pt weights
            confidence_floor: Minimum confidence returned by the model; the
                detection loop applies the user threshold on top of this
        """
        self.model_file = model_file
        self.confidence_floor = confidence_floor
        self.device = "cuda" if torch.cuda.is_available() else "cpu"

        self.model = YOLO(model_file)
        self.model.to(self.device)

        logger.info(f"Model initialized: {model_file}")
        logger.info(f"Device: {self.device}")
        if self.device == "cuda":
            logger.info(f"GPU: {torch.cuda.get_device_name(0)}")
        else:
            logger.warning("Running on CPU - performance will be slow")

    def detect(self, frame: np.ndarray) -> list[Prediction]:
        """Run one inference; boxes are in the frame's pixel coordinates."""
        results = self.model.predict(
            source=frame,
            conf=self.confidence_floor,
            device=self.device,
            verbose=False,
        )

        predictions: list[Prediction] = []
        for result in results:
            boxes = result.boxes
            if boxes is None or len(boxes) == 0:
                continue
            names = result.names
            xyxy = boxes.xyxy.cpu().numpy()
            confs = boxes.conf.cpu().numpy()
            classes = boxes.cls.cpu().numpy().astype(int)
            for (x1, y1, x2, y2), conf, cls in zip(xyxy, confs, classes):
                predictions.append(
                    Prediction(
                        label=names[int(cls)],
                        confidence=float(conf),
                        bbox=BoundingBox.from_xyxy(x1, y1, x2, y2),
                    )
                )
        return predictions
