"""Preprocessing operations for OCR."""

from typing import Dict, List, Tuple

import cv2
import numpy as np
from PIL import Image

from .scale_param import ScaleParam


class DetResizeForTest:
    """Resize image to the detector input size given by ``data['scale']``."""

    def __init__(self, interpolation=cv2.INTER_LINEAR, **kwargs):
        self.interpolation = interpolation

    def __call__(self, data: Dict) -> Dict:
        img = data['image']
        scale: ScaleParam = data['scale']

        data['image'] = cv2.resize(
            img,
            (scale.dst_width, scale.dst_height),
            interpolation=self.interpolation,
        )
        return data


class NormalizeImage:
    """Normalize HWC image values."""

    def __init__(self, scale=1. / 255., mean=(0.485, 0.456, 0.406),
                 std=(0.229, 0.224, 0.225), **kwargs):
        self.scale = np.float32(scale)
        self.mean = np.array(mean).reshape((1, 1, 3)).astype('float32')
        self.std = np.array(std).reshape((1, 1, 3)).astype('float32')

    def __call__(self, data: Dict) -> Dict:
        img = data['image'].astype('float32') * self.scale
        data['image'] = (img - self.mean) / self.std
        return data


class ToCHWImage:
    """Convert image from HWC to CHW format."""

    def __call__(self, data: Dict) -> Dict:
        img = data['image']
        data['image'] = img.transpose((2, 0, 1))
        return data


class KeepKeys:
    """Keep only specified keys in data dict."""

    def __init__(self, keep_keys: List[str], **kwargs):
        self.keep_keys = keep_keys

    def __call__(self, data: Dict) -> Tuple:
        return tuple(data[key] for key in self.keep_keys)


def create_operators(op_param_list: List[Dict]):
    """Create preprocessing operators from config list.

    Args:
        op_param_list: List of dicts like [{"OpName": {params}}]

    Returns:
        List of operator instances
    """
    ops = []
    for operator in op_param_list:
        assert isinstance(operator, dict) and len(operator) == 1
        op_name = list(operator)[0]
        param = {} if operator[op_name] is None else operator[op_name]
        op = globals()[op_name](**param)
        ops.append(op)
    return ops


def transform(data: Dict, ops: List):
    """Apply preprocessing operators sequentially."""
    for op in ops:
        data = op(data)
        if data is None:
            return None
    return data


def to_rgb_array(image) -> np.ndarray:
    """Return ``image`` (PIL Image or ndarray) as an HxWx3 uint8 RGB array."""
    if isinstance(image, Image.Image):
        return np.array(image.convert("RGB"))

    img = np.asarray(image)
    if img.ndim == 3 and img.shape[2] == 1:
        img = img[:, :, 0]
    if img.ndim == 2:
        img = cv2.cvtColor(img, cv2.COLOR_GRAY2RGB)
    elif img.shape[2] == 4:
        img = cv2.cvtColor(img, cv2.COLOR_RGBA2RGB)
    return np.ascontiguousarray(img, dtype=np.uint8)
