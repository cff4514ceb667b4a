"""
Text Detection Module - Stage 1 of OCR Pipeline

Detects text regions in images using DBNet architecture.
"""

import logging
from typing import List

import numpy as np

from .config import DetectorConfig
from .errors import InferenceError
from .ocr_result import TextBox
from .onnx_base import InferenceEngine
from .postprocess import DBPostProcess
from .preprocess import create_operators, transform
from .scale_param import ScaleParam

logger = logging.getLogger(__name__)


class TextDetector:
    """Text detection module.

    Takes an RGB image and its ScaleParam and returns text boxes in the
    coordinates of that image.
    """

    def __init__(self, engine: InferenceEngine, config: DetectorConfig = None):
        """Initialize text detector.

        Args:
            engine: Inference engine wrapping the detection model (det.onnx)
            config: Detector configuration (uses defaults if None)
        """
        if config is None:
            config = DetectorConfig()

        self.config = config
        self.engine = engine

        self.preprocess_ops = create_operators([
            {"DetResizeForTest": None},
            {
                "NormalizeImage": {
                    "std": [0.229, 0.224, 0.225],
                    "mean": [0.485, 0.456, 0.406],
                    "scale": 1. / 255.,
                }
            },
            {"ToCHWImage": None},
            {"KeepKeys": {"keep_keys": ["image"]}},
        ])

        self.postprocess_op = DBPostProcess(
            thresh=config.box_thresh,
            box_thresh=config.box_score_thresh,
            max_candidates=config.max_candidates,
            unclip_ratio=config.unclip_ratio,
            use_dilation=config.use_dilation,
            min_size=config.min_size,
        )

    def preprocess(self, image: np.ndarray, scale: ScaleParam) -> np.ndarray:
        """Resize and normalize ``image`` into a 1xCxHxW tensor."""
        (img,) = transform({"image": image, "scale": scale}, self.preprocess_ops)
        return np.expand_dims(img, axis=0).astype(np.float32)

    def predict(self, image: np.ndarray, scale: ScaleParam) -> np.ndarray:
        """Run the detector and return its (H, W) probability map."""
        tensor = self.preprocess(image, scale)
        output = np.asarray(self.engine.infer(tensor))

        if output.size != scale.dst_height * scale.dst_width:
            raise InferenceError(
                f"Detector output shape {output.shape} does not match "
                f"input {scale.dst_height}x{scale.dst_width}"
            )
        return output.reshape(scale.dst_height, scale.dst_width)

    def __call__(
        self,
        image: np.ndarray,
        scale: ScaleParam,
        box_score_thresh: float = None,
        box_thresh: float = None,
        unclip_ratio: float = None,
    ) -> List[TextBox]:
        """Detect text in a single image.

        Thresholds left as None use the configured values.
        """
        pred = self.predict(image, scale)

        postprocess_op = self.postprocess_op
        if any(v is not None for v in (box_score_thresh, box_thresh, unclip_ratio)):
            # Per-call thresholds never mutate the shared instance
            postprocess_op = DBPostProcess(
                thresh=box_thresh if box_thresh is not None else self.config.box_thresh,
                box_thresh=(box_score_thresh if box_score_thresh is not None
                            else self.config.box_score_thresh),
                max_candidates=self.config.max_candidates,
                unclip_ratio=unclip_ratio if unclip_ratio is not None else self.config.unclip_ratio,
                use_dilation=self.config.use_dilation,
                min_size=self.config.min_size,
            )

        boxes = postprocess_op(pred, scale)
        logger.debug("Detected %d boxes (%s)", len(boxes), scale)
        return boxes
