"""Result types produced by the OCR stages."""

import math
from dataclasses import dataclass, field
from typing import List

import numpy as np


def _format_points(points: np.ndarray) -> str:
    return ", ".join(f"[x: {int(x)}, y: {int(y)}]" for x, y in points)


@dataclass
class TextBox:
    """A detected region: 4 corners (4x2 int32) and the mean heatmap score."""
    points: np.ndarray
    score: float

    def __str__(self):
        return f"TextBox[score({self.score}), {_format_points(self.points)}]"


@dataclass
class Angle:
    """Orientation vote for one strip. ``index == 1`` means rotated 180 degrees.

    ``enabled`` is False when classification was skipped; the strip then
    keeps index 0 and score 0.
    """
    index: int = 0
    score: float = 0.0
    time: float = 0.0
    enabled: bool = True

    def __str__(self):
        header = "Angle" if self.enabled else "AngleDisabled"
        return f"{header}[Index({self.index}), Score({self.score}), Time({self.time}ms)]"


@dataclass
class TextLine:
    """Decoded text of one strip.

    ``text_score`` is the mean of ``char_scores`` and is NaN when nothing was
    emitted; check ``has_text`` rather than comparing against NaN.
    """
    text: str = ""
    char_scores: List[float] = field(default_factory=list)
    time: float = 0.0

    @property
    def has_text(self) -> bool:
        return len(self.char_scores) > 0

    @property
    def text_score(self) -> float:
        if not self.char_scores:
            return math.nan
        return float(sum(self.char_scores) / len(self.char_scores))

    def __str__(self):
        scores = ",".join(str(s) for s in self.char_scores)
        return f"TextLine[Text({self.text}),CharScores({scores}),Time({self.time}ms)]"


@dataclass(frozen=True)
class TextBlock:
    """Everything known about one region, in original-image coordinates."""
    box_points: np.ndarray
    box_score: float
    angle_index: int
    angle_score: float
    angle_time: float
    text: str
    char_scores: List[float]
    text_score: float
    crnn_time: float
    block_time: float
    angle_enabled: bool = True

    def __str__(self):
        header = "Angle" if self.angle_enabled else "AngleDisabled"
        scores = ",".join(str(s) for s in self.char_scores)
        return "\n".join([
            "├─TextBlock",
            f"│   ├──TextBox[score({self.box_score}), {_format_points(self.box_points)}]",
            f"│   ├──{header}[Index({self.angle_index}), Score({self.angle_score}), "
            f"Time({self.angle_time}ms)]",
            f"│   ├──TextLine[Text({self.text}),CharScores({scores}),Time({self.crnn_time}ms)]",
            f"│   └──BlockTime({self.block_time}ms)",
        ])


@dataclass
class OcrResult:
    """All text blocks found in one image."""
    text_blocks: List[TextBlock] = field(default_factory=list)
    db_net_time: float = 0.0
    detect_time: float = 0.0

    @property
    def str_res(self) -> str:
        return "\n".join(block.text for block in self.text_blocks)

    def __len__(self):
        return len(self.text_blocks)

    def __iter__(self):
        return iter(self.text_blocks)

    def __str__(self):
        lines = ["OcrResult"]
        lines.extend(str(block) for block in self.text_blocks)
        lines.append(f"├─DbNetTime({self.db_net_time}ms)")
        lines.append(f"├─DetectTime({self.detect_time}ms)")
        lines.append(f"└─StrRes({self.str_res})")
        return "\n".join(lines)
