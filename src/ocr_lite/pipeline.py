"""
High-level OCR Pipeline
Combines detection, orientation classification and recognition
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from .config import ClassifierConfig, DetectorConfig, OcrConfig, RecognizerConfig
from .errors import ImageDecodeError, ModelNotInitializedError, OcrIOError
from .ocr_result import OcrResult, TextBlock
from .onnx_base import InferenceEngine, ONNXInferenceBase, SerializedEngine, SessionOptionsHook
from .postprocess import load_vocabulary
from .preprocess import to_rgb_array
from .scale_param import ScaleParam
from .text_classifier import TextClassifier
from .text_detector import TextDetector
from .text_recognizer import TextRecognizer
from .utils import get_rotate_crop_image, make_padding, rotate_180, sorted_boxes

logger = logging.getLogger(__name__)

ModelSource = Union[str, Path, bytes]


class OCRPipeline:
    """
    Complete OCR pipeline combining detection, classification, and recognition.

    Usage:
        ocr = OCRPipeline()
        ocr.init_models("det.onnx", "cls.onnx", "rec.onnx", "keys.txt", num_threads=4)
        result = ocr.detect(image, padding=50, max_side_len=1024)
    """

    def __init__(self, config: OcrConfig = None):
        self.config = config if config is not None else OcrConfig()
        self.text_detector: Optional[TextDetector] = None
        self.text_classifier: Optional[TextClassifier] = None
        self.text_recognizer: Optional[TextRecognizer] = None

    # ------------------------------------------------------------------
    # Model initialization
    # ------------------------------------------------------------------

    def init_models(
        self,
        det_model: ModelSource,
        cls_model: ModelSource,
        rec_model: ModelSource,
        char_dict_path: Union[str, Path],
        num_threads: int = None,
        use_gpu: bool = False,
        session_options_hook: Optional[SessionOptionsHook] = None,
    ) -> "OCRPipeline":
        """Load the three ONNX models and the recognizer vocabulary.

        Args:
            det_model: Detection model path or serialized bytes
            cls_model: Classification model path or serialized bytes
            rec_model: Recognition model path or serialized bytes
            char_dict_path: Character dictionary, one symbol per line
            num_threads: ONNX Runtime threads per session (default: config.num_threads)
            use_gpu: Enable CUDA GPU acceleration
            session_options_hook: Callable adjusting each session's options
        """
        if num_threads is None:
            num_threads = self.config.num_threads

        character = load_vocabulary(char_dict_path)

        def load(model: ModelSource) -> ONNXInferenceBase:
            return ONNXInferenceBase(
                model,
                num_threads=num_threads,
                use_gpu=use_gpu,
                session_options_hook=session_options_hook,
            )

        logger.info("Initializing OCR models with %d threads", num_threads)
        self._set_engines(
            load(det_model),
            load(cls_model),
            load(rec_model),
            character,
        )
        return self

    def init_models_from_memory(
        self,
        det_bytes: bytes,
        cls_bytes: bytes,
        rec_bytes: bytes,
        char_dict_path: Union[str, Path],
        num_threads: int = None,
        use_gpu: bool = False,
        session_options_hook: Optional[SessionOptionsHook] = None,
    ) -> "OCRPipeline":
        """Load the three models from serialized bytes."""
        return self.init_models(
            det_bytes,
            cls_bytes,
            rec_bytes,
            char_dict_path,
            num_threads=num_threads,
            use_gpu=use_gpu,
            session_options_hook=session_options_hook,
        )

    @classmethod
    def from_engines(
        cls,
        det_engine: InferenceEngine,
        cls_engine: InferenceEngine,
        rec_engine: InferenceEngine,
        character: Union[Sequence[str], str, Path],
        config: OcrConfig = None,
    ) -> "OCRPipeline":
        """Build a pipeline around already constructed inference engines."""
        pipeline = cls(config)
        if isinstance(character, (str, Path)):
            character = load_vocabulary(character)
        pipeline._set_engines(det_engine, cls_engine, rec_engine, list(character))
        return pipeline

    def _set_engines(self, det_engine, cls_engine, rec_engine, character):
        if self.config.serialize_inference:
            det_engine = SerializedEngine(det_engine)
            cls_engine = SerializedEngine(cls_engine)
            rec_engine = SerializedEngine(rec_engine)

        self.text_detector = TextDetector(det_engine, DetectorConfig(
            box_score_thresh=self.config.box_score_thresh,
            box_thresh=self.config.box_thresh,
            unclip_ratio=self.config.unclip_ratio,
        ))
        self.text_classifier = TextClassifier(cls_engine, ClassifierConfig())
        self.text_recognizer = TextRecognizer(rec_engine, character, RecognizerConfig())

    @property
    def initialized(self) -> bool:
        return self.text_detector is not None

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect(
        self,
        image,
        padding: int = None,
        max_side_len: int = None,
        box_score_thresh: float = None,
        box_thresh: float = None,
        un_clip_ratio: float = None,
        do_angle: bool = None,
        most_angle: bool = None,
        rollback_threshold: float = None,
    ) -> OcrResult:
        """
        Perform OCR on an image.

        Args:
            image: RGB image as numpy array (H, W, 3) or PIL Image
            padding: White border added on every side before detection
            max_side_len: Longest side fed to the detector (0 keeps original size)
            box_score_thresh: Minimum region score
            box_thresh: Heatmap binarization threshold
            un_clip_ratio: Region expansion ratio
            do_angle: Run orientation classification
            most_angle: Force all regions to the majority orientation
            rollback_threshold: Re-decode the un-rotated strip below this score

        Returns:
            OcrResult with one TextBlock per detected region.
            Parameters left as None use the pipeline's OcrConfig.
        """
        if not self.initialized:
            raise ModelNotInitializedError("init_models must be called before detect")

        config = self.config.override(
            padding=padding,
            max_side_len=max_side_len,
            box_score_thresh=box_score_thresh,
            box_thresh=box_thresh,
            unclip_ratio=un_clip_ratio,
            do_angle=do_angle,
            most_angle=most_angle,
            rollback_threshold=rollback_threshold,
        )

        start = time.perf_counter()
        img = to_rgb_array(image)

        origin_max_side = max(img.shape[0], img.shape[1])
        if 0 < config.max_side_len < origin_max_side:
            resize = config.max_side_len
        else:
            resize = origin_max_side
        resize += 2 * config.padding

        padding_img = make_padding(img, config.padding)
        scale = ScaleParam.from_image(padding_img, resize)

        result = self._detect_once(padding_img, scale, config)
        result.detect_time = (time.perf_counter() - start) * 1000
        logger.debug(
            "OCR finished: %d blocks, db_net %.1f ms, total %.1f ms",
            len(result.text_blocks), result.db_net_time, result.detect_time,
        )
        return result

    def detect_angle_rollback(self, image, rollback_threshold: float, **kwargs) -> OcrResult:
        """Same as ``detect`` with the un-rotated strip used for weak results."""
        return self.detect(image, rollback_threshold=rollback_threshold, **kwargs)

    def detect_from_path(self, img_path: Union[str, Path], **kwargs) -> OcrResult:
        """Decode an image file with Pillow and run ``detect`` on it."""
        return self.detect(load_image(img_path), **kwargs)

    def _detect_once(self, img: np.ndarray, scale: ScaleParam, config: OcrConfig) -> OcrResult:
        # Stage 1: Detect text regions
        db_start = time.perf_counter()
        text_boxes = self.text_detector(
            img,
            scale,
            box_score_thresh=config.box_score_thresh,
            box_thresh=config.box_thresh,
            unclip_ratio=config.unclip_ratio,
        )
        db_net_time = (time.perf_counter() - db_start) * 1000

        if config.sort_boxes:
            text_boxes = sorted_boxes(text_boxes)

        if not text_boxes:
            return OcrResult(text_blocks=[], db_net_time=db_net_time)

        # Stage 2: Crop text strips
        part_images = self._map(
            config,
            lambda text_box: get_rotate_crop_image(img, text_box.points),
            text_boxes,
        )

        # Stage 3: Classify orientation, majority needs the whole batch
        angles = self.text_classifier(part_images, config.do_angle, config.most_angle)

        keep_rollback = config.rollback_threshold is not None
        rollback_images: List[Optional[np.ndarray]] = [None] * len(part_images)
        rotated_images = []
        for i, (part_img, angle) in enumerate(zip(part_images, angles)):
            if angle.index == 1:
                if keep_rollback:
                    rollback_images[i] = part_img
                part_img = rotate_180(part_img)
            rotated_images.append(part_img)

        # Stage 4: Recognize text
        text_lines = self._map(
            config,
            lambda i: self.text_recognizer.recognize_with_rollback(
                rotated_images[i], rollback_images[i], config.rollback_threshold
            ),
            range(len(rotated_images)),
        )

        text_blocks = []
        for text_box, angle, text_line in zip(text_boxes, angles, text_lines):
            text_blocks.append(TextBlock(
                box_points=text_box.points - config.padding,
                box_score=text_box.score,
                angle_index=angle.index,
                angle_score=angle.score,
                angle_time=angle.time,
                text=text_line.text,
                char_scores=list(text_line.char_scores),
                text_score=text_line.text_score,
                crnn_time=text_line.time,
                block_time=angle.time + text_line.time,
                angle_enabled=angle.enabled,
            ))

        return OcrResult(text_blocks=text_blocks, db_net_time=db_net_time)

    @staticmethod
    def _map(config: OcrConfig, fn: Callable, items: Iterable) -> list:
        """Order-preserving map, on a thread pool when enabled."""
        items = list(items)
        if not config.parallel or len(items) <= 1:
            return [fn(item) for item in items]
        with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
            return list(executor.map(fn, items))

    def __repr__(self):
        return (
            f"OCRPipeline(\n"
            f"  detector={self.text_detector},\n"
            f"  classifier={self.text_classifier},\n"
            f"  recognizer={self.text_recognizer}\n"
            f")"
        )


def load_image(img_path: Union[str, Path]) -> np.ndarray:
    """Decode an image file into an RGB array."""
    try:
        with Image.open(img_path) as image:
            return np.array(image.convert("RGB"))
    except UnidentifiedImageError as e:
        raise ImageDecodeError(f"Cannot decode image {img_path}: {e}") from e
    except OSError as e:
        raise OcrIOError(f"Cannot read image {img_path}: {e}") from e
