"""Configuration classes for OCR modules."""

from dataclasses import dataclass, replace
from typing import List, Optional


@dataclass
class DetectorConfig:
    """Configuration for text detection stage."""
    box_score_thresh: float = 0.5  # Minimum mean heatmap value inside a region
    box_thresh: float = 0.3  # Binarization threshold
    unclip_ratio: float = 1.6  # Text region expansion ratio
    max_candidates: Optional[int] = None  # Cap on contours considered (None = all)
    min_size: float = 3.0  # Minimum short side of a region, in heatmap pixels
    use_dilation: bool = True  # Apply 2x2 dilation to binary mask


@dataclass
class ClassifierConfig:
    """Configuration for text orientation classification stage."""
    cls_image_shape: List[int] = None  # [C, H, W] e.g., [3, 48, 192]
    cls_batch_num: int = 6  # Batch size for classification
    label_list: List[str] = None  # e.g., ['0', '180']

    def __post_init__(self):
        if self.cls_image_shape is None:
            self.cls_image_shape = [3, 48, 192]
        if self.label_list is None:
            self.label_list = ['0', '180']


@dataclass
class RecognizerConfig:
    """Configuration for text recognition stage."""
    rec_image_height: int = 48  # Fixed input height, width follows aspect ratio


@dataclass
class OcrConfig:
    """Per-call parameters for the full pipeline."""
    padding: int = 50  # White border added around the image before detection
    max_side_len: int = 1024  # Longest side fed to the detector (0 = original size)
    box_score_thresh: float = 0.5
    box_thresh: float = 0.3
    unclip_ratio: float = 1.6
    do_angle: bool = True  # Run the orientation classifier
    most_angle: bool = False  # Force every region to the majority orientation
    rollback_threshold: Optional[float] = None  # Re-decode un-rotated strip below this score
    sort_boxes: bool = False  # Top-to-bottom ordering instead of detector order
    parallel: bool = True  # Rectify and decode regions on a thread pool
    max_workers: Optional[int] = None
    serialize_inference: bool = False  # Guard engine calls with a lock
    num_threads: int = 4  # ONNX Runtime intra/inter op threads

    def override(self, **kwargs) -> "OcrConfig":
        """Return a copy with the given fields replaced, ignoring ``None`` values."""
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})
