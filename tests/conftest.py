import numpy as np
import pytest

from ocr_lite.onnx_base import InferenceEngine


class DarkRegionDetector(InferenceEngine):
    """Heatmap with ``value`` wherever the normalized input's first channel is dark."""

    def __init__(self, value=0.9):
        self.value = value
        self.calls = 0

    def infer(self, tensor):
        self.calls += 1
        dark = tensor[0, 0] < 0
        return np.where(dark, self.value, 0.0).astype(np.float32)[np.newaxis, np.newaxis]


class FixedEngine(InferenceEngine):
    """Returns the queued outputs in order, repeating the last one."""

    def __init__(self, *outputs):
        self.outputs = [np.asarray(o, dtype=np.float32) for o in outputs]
        self.inputs = []

    def infer(self, tensor):
        self.inputs.append(tensor)
        index = min(len(self.inputs), len(self.outputs)) - 1
        return self.outputs[index]


class BatchClassifier(InferenceEngine):
    """Emits one probability row per strip from ``rows`` (cycled)."""

    def __init__(self, rows):
        self.rows = [list(r) for r in rows]
        self.offset = 0

    def infer(self, tensor):
        n = tensor.shape[0]
        out = [self.rows[(self.offset + i) % len(self.rows)] for i in range(n)]
        self.offset += n
        return np.asarray(out, dtype=np.float32)


def one_hot(indices, num_classes, peak=0.9):
    """(1, T, C) recognizer output whose argmax follows ``indices``."""
    rest = (1.0 - peak) / (num_classes - 1)
    out = np.full((1, len(indices), num_classes), rest, dtype=np.float32)
    for t, idx in enumerate(indices):
        out[0, t, idx] = peak
    return out


@pytest.fixture
def vocabulary():
    return ["#", "a", "b", "c", " "]


@pytest.fixture
def keys_file(tmp_path):
    path = tmp_path / "keys.txt"
    path.write_text("a\nb\nc\n", encoding="utf-8")
    return path


@pytest.fixture
def rectangle_image():
    """200x100 white image with a black rectangle at x 40..160, y 30..70."""
    img = np.full((100, 200, 3), 255, dtype=np.uint8)
    img[30:70, 40:160] = 0
    return img
