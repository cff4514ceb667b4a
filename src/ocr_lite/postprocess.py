"""Postprocessing modules for OCR outputs."""

import logging
from pathlib import Path
from typing import List, Tuple, Union

import cv2
import numpy as np
import pyclipper
from shapely.geometry import Polygon

from .errors import OcrIOError
from .ocr_result import Angle, TextBox, TextLine
from .scale_param import ScaleParam

logger = logging.getLogger(__name__)


class DBPostProcess:
    """Post-processing for DB (Differentiable Binarization) text detection.

    Converts a probability map to scored quadrilaterals in source-image
    coordinates.
    """

    def __init__(
        self,
        thresh=0.3,
        box_thresh=0.5,
        max_candidates=None,
        unclip_ratio=1.6,
        use_dilation=True,
        min_size=3.0,
    ):
        """Initialize DB post-processor.

        Args:
            thresh: Binarization threshold for probability map
            box_thresh: Minimum masked-mean score for boxes
            max_candidates: Maximum number of contours to consider (None for all)
            unclip_ratio: Ratio for expanding text regions
            use_dilation: Apply 2x2 morphological dilation
            min_size: Minimum short side of a box before expansion
        """
        self.thresh = thresh
        self.box_thresh = box_thresh
        self.max_candidates = max_candidates
        self.unclip_ratio = unclip_ratio
        self.min_size = min_size

        self.dilation_kernel = None if not use_dilation else np.ones((2, 2), dtype=np.uint8)

    def __call__(self, pred: np.ndarray, scale: ScaleParam) -> List[TextBox]:
        """Convert a single probability map to text boxes.

        Args:
            pred: Probability map of shape (H, W)
            scale: Scale parameters of the detector input

        Returns:
            Text boxes in reverse contour-discovery order
        """
        bitmap = np.where(pred >= self.thresh, 255, 0).astype(np.uint8)
        if self.dilation_kernel is not None:
            bitmap = cv2.dilate(bitmap, self.dilation_kernel, iterations=1)

        return self.boxes_from_bitmap(pred, bitmap, scale)

    def boxes_from_bitmap(self, pred, bitmap, scale: ScaleParam) -> List[TextBox]:
        """Extract quad boxes from binary bitmap."""
        outs = cv2.findContours(bitmap, cv2.RETR_LIST, cv2.CHAIN_APPROX_SIMPLE)
        contours = outs[-2]

        boxes = []
        for contour in contours[:self.max_candidates]:
            if contour.shape[0] <= 2:
                continue

            points, sside = self.get_mini_boxes(contour)
            if sside < self.min_size:
                logger.debug("Skipping contour: short side %.2f", sside)
                continue

            score = self.box_score(pred, contour.reshape(-1, 2))
            if score < self.box_thresh:
                logger.debug("Skipping contour: score %.3f", score)
                continue

            expanded = self.unclip(points, self.unclip_ratio)
            if len(expanded) == 0:
                logger.debug("Skipping contour: unclip produced no polygon")
                continue

            box, sside = self.get_mini_boxes(expanded.reshape(-1, 1, 2))
            if sside < self.min_size + 2:
                continue

            box = np.array(box)
            box[:, 0] = np.clip(np.round(box[:, 0] / scale.scale_x), 0, scale.src_width)
            box[:, 1] = np.clip(np.round(box[:, 1] / scale.scale_y), 0, scale.src_height)
            boxes.append(TextBox(points=box.astype("int32"), score=float(score)))

        boxes.reverse()
        return boxes

    @staticmethod
    def unclip(box, unclip_ratio) -> np.ndarray:
        """Expand box using Vatti clipping algorithm.

        Returns an empty array for degenerate boxes.
        """
        box = np.asarray(box, dtype=np.float32).reshape(-1, 2)
        _, (w, h), _ = cv2.minAreaRect(box)
        if w < 1.001 and h < 1.001:
            return np.array([])

        poly = Polygon(box)
        if poly.length == 0 or poly.area == 0:
            return np.array([])
        distance = poly.area * unclip_ratio / poly.length

        offset = pyclipper.PyclipperOffset()
        offset.AddPath(box, pyclipper.JT_ROUND, pyclipper.ET_CLOSEDPOLYGON)
        solution = offset.Execute(distance)
        if not solution:
            return np.array([])
        return np.array(solution[0], dtype=np.float32)

    @staticmethod
    def get_mini_boxes(contour) -> Tuple[np.ndarray, float]:
        """Get minimum area rectangle.

        Corners are sorted by x; the left pair fills slots 0 and 3 and the
        right pair slots 1 and 2, the smaller-y corner of each pair first.
        """
        bounding_box = cv2.minAreaRect(np.asarray(contour, dtype=np.float32))
        points = sorted(list(cv2.boxPoints(bounding_box)), key=lambda x: x[0])

        if points[1][1] > points[0][1]:
            index_1, index_4 = 0, 1
        else:
            index_1, index_4 = 1, 0

        if points[3][1] > points[2][1]:
            index_2, index_3 = 2, 3
        else:
            index_2, index_3 = 3, 2

        box = np.array([points[index_1], points[index_2], points[index_3], points[index_4]])
        return box, min(bounding_box[1])

    @staticmethod
    def box_score(bitmap, contour) -> float:
        """Mean of ``bitmap`` inside the filled polygon ``contour``."""
        h, w = bitmap.shape[:2]
        contour = np.asarray(contour).reshape(-1, 2).copy()

        xmin = np.clip(np.floor(contour[:, 0].min()).astype("int32"), 0, w - 1)
        xmax = np.clip(np.ceil(contour[:, 0].max()).astype("int32"), 0, w - 1)
        ymin = np.clip(np.floor(contour[:, 1].min()).astype("int32"), 0, h - 1)
        ymax = np.clip(np.ceil(contour[:, 1].max()).astype("int32"), 0, h - 1)

        mask = np.zeros((ymax - ymin + 1, xmax - xmin + 1), dtype=np.uint8)
        contour[:, 0] = contour[:, 0] - xmin
        contour[:, 1] = contour[:, 1] - ymin
        cv2.fillPoly(mask, contour.reshape(1, -1, 2).astype("int32"), 1)
        roi = np.ascontiguousarray(bitmap[ymin:ymax + 1, xmin:xmax + 1], dtype=np.float32)
        return cv2.mean(roi, mask)[0]


class ClsPostProcess:
    """Post-processing for text orientation classification."""

    def __init__(self, label_list=None):
        self.label_list = label_list if label_list else ['0', '180']

    def __call__(self, preds: np.ndarray) -> List[Angle]:
        """Convert (N, num_classes) probabilities to angles."""
        preds = preds.reshape(preds.shape[0], -1)[:, :len(self.label_list)]
        pred_idxs = preds.argmax(axis=1)
        return [
            Angle(index=int(idx), score=float(preds[i, idx]))
            for i, idx in enumerate(pred_idxs)
        ]

    @staticmethod
    def majority(angles: List[Angle]) -> List[Angle]:
        """Force every angle to the batch majority; scores are left as they are."""
        if not angles:
            return angles
        index_sum = sum(angle.index for angle in angles)
        most_index = 0 if index_sum < len(angles) / 2.0 else 1
        for angle in angles:
            angle.index = most_index
        return angles


def load_vocabulary(character_dict_path: Union[str, Path]) -> List[str]:
    """Read one symbol per line, framed by the blank ``#`` and a trailing space."""
    character = ["#"]
    try:
        with open(character_dict_path, "rb") as fin:
            for line in fin.readlines():
                character.append(line.decode("utf-8").rstrip("\r\n"))
    except OSError as e:
        raise OcrIOError(f"Cannot read vocabulary {character_dict_path}: {e}") from e
    character.append(" ")
    return character


class CTCLabelDecode:
    """Greedy CTC-style decoding for text recognition."""

    def __init__(self, character: List[str]):
        """Initialize decoder.

        Args:
            character: Vocabulary with the blank symbol at index 0
        """
        self.character = character

    @classmethod
    def from_file(cls, character_dict_path: Union[str, Path]) -> "CTCLabelDecode":
        return cls(load_vocabulary(character_dict_path))

    def __call__(self, preds: np.ndarray) -> TextLine:
        """Decode a (T, C) score matrix.

        A symbol is emitted when its index is not blank, is inside the
        vocabulary, and differs from the previous timestep's index.
        """
        preds = preds.reshape(-1, preds.shape[-1])
        preds_idx = preds.argmax(axis=1)
        preds_prob = preds.max(axis=1)

        chars = []
        char_scores = []
        last_index = 0
        for i, (idx, prob) in enumerate(zip(preds_idx, preds_prob)):
            idx = int(idx)
            if 0 < idx < len(self.character) and not (i > 0 and idx == last_index):
                chars.append(self.character[idx])
                char_scores.append(float(prob))
            last_index = idx

        return TextLine(text="".join(chars), char_scores=char_scores)
