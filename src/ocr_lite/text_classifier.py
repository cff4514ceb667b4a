"""
Text Orientation Classification Module - Stage 2 of OCR Pipeline

Votes 0 or 180 degrees for each rectified text strip.
"""

import logging
import time
from typing import List

import cv2
import numpy as np

from .config import ClassifierConfig
from .ocr_result import Angle
from .onnx_base import InferenceEngine
from .postprocess import ClsPostProcess

logger = logging.getLogger(__name__)


class TextClassifier:
    """Text orientation classification module with batch processing."""

    def __init__(self, engine: InferenceEngine, config: ClassifierConfig = None):
        """Initialize text classifier.

        Args:
            engine: Inference engine wrapping the classification model (cls.onnx)
            config: Classifier configuration (uses defaults if None)
        """
        if config is None:
            config = ClassifierConfig()

        self.config = config
        self.engine = engine
        self.cls_image_shape = config.cls_image_shape
        self.cls_batch_num = config.cls_batch_num

        self.postprocess_op = ClsPostProcess(label_list=config.label_list)

    def resize_norm_img(self, img: np.ndarray) -> np.ndarray:
        """Stretch to the fixed classifier canvas and normalize to [-1, 1].

        Args:
            img: Input image (H, W, C)

        Returns:
            Processed image (C, H, W)
        """
        _, imgH, imgW = self.cls_image_shape
        resized_image = cv2.resize(img, (imgW, imgH), interpolation=cv2.INTER_NEAREST)
        resized_image = resized_image.astype("float32").transpose((2, 0, 1))
        resized_image -= 127.5
        resized_image /= 127.5
        return resized_image

    def __call__(
        self,
        img_list: List[np.ndarray],
        do_angle: bool = True,
        most_angle: bool = False,
    ) -> List[Angle]:
        """Classify orientation of a batch of strips.

        Args:
            img_list: Rectified text strips (RGB)
            do_angle: If False, every strip gets index 0 and score 0
            most_angle: Force all strips to the majority orientation

        Returns:
            One Angle per strip, in input order
        """
        if not do_angle:
            return [Angle(enabled=False) for _ in img_list]

        angles = []
        for beg_img_no in range(0, len(img_list), self.cls_batch_num):
            end_img_no = min(len(img_list), beg_img_no + self.cls_batch_num)
            start = time.perf_counter()

            norm_img_batch = np.stack([
                self.resize_norm_img(img_list[ino])
                for ino in range(beg_img_no, end_img_no)
            ])
            prob_out = np.asarray(self.engine.infer(norm_img_batch))
            batch_angles = self.postprocess_op(prob_out)

            elapsed = (time.perf_counter() - start) * 1000 / len(batch_angles)
            for angle in batch_angles:
                angle.time = elapsed
            angles.extend(batch_angles)

        if most_angle:
            angles = self.postprocess_op.majority(angles)

        logger.debug("Angles: %s", [a.index for a in angles])
        return angles
