"""
Lightweight ONNX OCR

Three independent stages:
- TextDetector: Finds text regions in images (DBNet)
- TextClassifier: Votes 0/180 degree orientation per region
- TextRecognizer: Converts text strips to strings (greedy CTC)

High-level interface:
- OCRPipeline: pad -> detect -> rectify -> orient -> recognize
"""

from .config import ClassifierConfig, DetectorConfig, OcrConfig, RecognizerConfig
from .errors import (
    ImageDecodeError,
    InferenceError,
    ModelNotInitializedError,
    OcrError,
    OcrIOError,
)
from .ocr_result import Angle, OcrResult, TextBlock, TextBox, TextLine
from .onnx_base import InferenceEngine, ONNXInferenceBase
from .pipeline import OCRPipeline, load_image
from .scale_param import ScaleParam
from .text_classifier import TextClassifier
from .text_detector import TextDetector
from .text_recognizer import TextRecognizer

__version__ = "0.1.0"
__all__ = [
    "OCRPipeline",
    "TextDetector",
    "TextClassifier",
    "TextRecognizer",
    "InferenceEngine",
    "ONNXInferenceBase",
    "DetectorConfig",
    "ClassifierConfig",
    "RecognizerConfig",
    "OcrConfig",
    "ScaleParam",
    "TextBox",
    "Angle",
    "TextLine",
    "TextBlock",
    "OcrResult",
    "OcrError",
    "ModelNotInitializedError",
    "InferenceError",
    "ImageDecodeError",
    "OcrIOError",
    "load_image",
]
