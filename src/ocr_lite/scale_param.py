"""Mapping between original-image and detector-input coordinates."""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class ScaleParam:
    """Detector input size and the scale factors back to the source image."""
    src_width: int
    src_height: int
    dst_width: int
    dst_height: int
    scale_x: float
    scale_y: float

    @classmethod
    def from_image(cls, image: np.ndarray, dst_size: int) -> "ScaleParam":
        """Fit the longer side of ``image`` to ``dst_size``.

        Both output sides are floored to a multiple of 32 (at least 32), as
        required by the detector's stride.
        """
        src_height, src_width = image.shape[:2]
        return cls.from_size(src_width, src_height, dst_size)

    @classmethod
    def from_size(cls, src_width: int, src_height: int, dst_size: int) -> "ScaleParam":
        if src_width > src_height:
            ratio = float(dst_size) / src_width
            dst_width = dst_size
            dst_height = int(src_height * ratio)
        else:
            ratio = float(dst_size) / src_height
            dst_height = dst_size
            dst_width = int(src_width * ratio)

        dst_width = max(dst_width // 32 * 32, 32)
        dst_height = max(dst_height // 32 * 32, 32)

        return cls(
            src_width=src_width,
            src_height=src_height,
            dst_width=dst_width,
            dst_height=dst_height,
            scale_x=dst_width / float(src_width),
            scale_y=dst_height / float(src_height),
        )

    def __str__(self):
        return (
            f"sw:{self.src_width},sh:{self.src_height},"
            f"dw:{self.dst_width},dh:{self.dst_height},"
            f"{self.scale_x},{self.scale_y}"
        )
