"""
Text Recognition Module - Stage 3 of OCR Pipeline

Recognizes text from oriented text strips.
"""

import logging
import time
from pathlib import Path
from typing import List, Optional, Sequence, Union

import cv2
import numpy as np

from .config import RecognizerConfig
from .ocr_result import TextLine
from .onnx_base import InferenceEngine
from .postprocess import CTCLabelDecode

logger = logging.getLogger(__name__)


class TextRecognizer:
    """Text recognition module.

    Each strip is run on its own because the input width follows the strip's
    aspect ratio.
    """

    def __init__(
        self,
        engine: InferenceEngine,
        character: Union[List[str], str, Path],
        config: RecognizerConfig = None,
    ):
        """Initialize text recognizer.

        Args:
            engine: Inference engine wrapping the recognition model (rec.onnx)
            character: Vocabulary list (blank first) or path to a dictionary file
            config: Recognizer configuration (uses defaults if None)
        """
        if config is None:
            config = RecognizerConfig()

        self.config = config
        self.engine = engine
        self.rec_image_height = config.rec_image_height

        if isinstance(character, (str, Path)):
            self.postprocess_op = CTCLabelDecode.from_file(character)
        else:
            self.postprocess_op = CTCLabelDecode(list(character))

    def resize_norm_img(self, img: np.ndarray) -> np.ndarray:
        """Resize to the fixed height keeping aspect ratio, normalize to [-1, 1].

        Args:
            img: Input image (H, W, C)

        Returns:
            Processed image (C, H, W)
        """
        imgH = self.rec_image_height
        h, w = img.shape[:2]
        resized_w = max(int(round(w * imgH / float(h))), 1)

        resized_image = cv2.resize(img, (resized_w, imgH), interpolation=cv2.INTER_NEAREST)
        resized_image = resized_image.astype("float32").transpose((2, 0, 1))
        resized_image -= 127.5
        resized_image /= 127.5
        return resized_image

    def recognize_single(self, img: np.ndarray) -> TextLine:
        """Recognize text in a single strip."""
        start = time.perf_counter()
        norm_img = self.resize_norm_img(img)[np.newaxis, :]
        preds = np.asarray(self.engine.infer(norm_img))
        text_line = self.postprocess_op(preds)
        text_line.time = (time.perf_counter() - start) * 1000
        return text_line

    def recognize_with_rollback(
        self,
        img: np.ndarray,
        rollback_img: Optional[np.ndarray] = None,
        rollback_threshold: Optional[float] = None,
    ) -> TextLine:
        """Recognize ``img``, falling back to ``rollback_img`` on weak results.

        When the first result is empty or scores below ``rollback_threshold``
        and an un-rotated copy is available, its result replaces the first one
        whatever its score.
        """
        text_line = self.recognize_single(img)
        if rollback_img is None or rollback_threshold is None:
            return text_line

        if not text_line.has_text or text_line.text_score < rollback_threshold:
            logger.debug(
                "Rolling back rotation: '%s' (%.3f) below %.3f",
                text_line.text, text_line.text_score, rollback_threshold,
            )
            text_line = self.recognize_single(rollback_img)
        return text_line

    def __call__(
        self,
        img_list: Sequence[np.ndarray],
        rollback_list: Optional[Sequence[Optional[np.ndarray]]] = None,
        rollback_threshold: Optional[float] = None,
    ) -> List[TextLine]:
        """Recognize text in batch of strips.

        Args:
            img_list: Text strips (RGB), possibly rotated by 180 degrees
            rollback_list: Per-strip un-rotated copies, None where no rotation happened
            rollback_threshold: Score below which the un-rotated copy is decoded instead

        Returns:
            One TextLine per strip, in input order
        """
        if rollback_list is None:
            rollback_list = [None] * len(img_list)
        return [
            self.recognize_with_rollback(img, rollback_img, rollback_threshold)
            for img, rollback_img in zip(img_list, rollback_list)
        ]
