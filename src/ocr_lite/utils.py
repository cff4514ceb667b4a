"""Utility functions for OCR pipeline."""

from typing import List

import cv2
import numpy as np

from .ocr_result import TextBox


def make_padding(img: np.ndarray, padding: int) -> np.ndarray:
    """Surround ``img`` with a white border of ``padding`` pixels."""
    if padding <= 0:
        return img.copy()
    return cv2.copyMakeBorder(
        img,
        padding, padding, padding, padding,
        cv2.BORDER_ISOLATED,
        value=(255, 255, 255),
    )


def get_rotate_crop_image(img: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Crop and rectify a text region from image.

    Args:
        img: Source image
        points: Ordered region corners (4x2 array) in image coordinates

    Returns:
        Upright strip; tall strips are turned 90 degrees counter-clockwise
    """
    points = np.asarray(points, dtype=np.int32).reshape(4, 2)

    left = int(points[:, 0].min())
    right = max(int(points[:, 0].max()), left + 1)
    top = int(points[:, 1].min())
    bottom = max(int(points[:, 1].max()), top + 1)
    img_crop = img[top:bottom, left:right]

    local = (points - np.array([left, top])).astype(np.float32)

    img_crop_width = max(int(np.linalg.norm(local[0] - local[1])), 1)
    img_crop_height = max(int(np.linalg.norm(local[0] - local[3])), 1)

    pts_std = np.float32([
        [0, 0],
        [img_crop_width, 0],
        [img_crop_width, img_crop_height],
        [0, img_crop_height]
    ])

    M = cv2.getPerspectiveTransform(local, pts_std)
    dst_img = cv2.warpPerspective(
        img_crop,
        M,
        (img_crop_width, img_crop_height),
        borderMode=cv2.BORDER_REPLICATE,
        flags=cv2.INTER_NEAREST
    )

    dst_img_height, dst_img_width = dst_img.shape[0:2]
    if dst_img_height * 1.0 / dst_img_width >= 1.5:
        dst_img = np.ascontiguousarray(np.rot90(dst_img))

    return dst_img


def rotate_180(img: np.ndarray) -> np.ndarray:
    return cv2.rotate(img, cv2.ROTATE_180)


def sorted_boxes(dt_boxes: List[TextBox]) -> List[TextBox]:
    """Sort text boxes from top to bottom, left to right.

    Boxes whose first corners lie within 10 pixels vertically are treated
    as one line and ordered by x.
    """
    _boxes = sorted(dt_boxes, key=lambda b: (b.points[0][1], b.points[0][0]))

    for i in range(len(_boxes) - 1):
        for j in range(i, -1, -1):
            if abs(_boxes[j + 1].points[0][1] - _boxes[j].points[0][1]) < 10 and \
               (_boxes[j + 1].points[0][0] < _boxes[j].points[0][0]):
                _boxes[j], _boxes[j + 1] = _boxes[j + 1], _boxes[j]
            else:
                break

    return _boxes
