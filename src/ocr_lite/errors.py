"""Exception types raised by the OCR pipeline."""


class OcrError(Exception):
    """Base class for all OCR errors."""
    pass


class ModelNotInitializedError(OcrError):
    """Raised when detection is requested before the models are loaded."""
    pass


class InferenceError(OcrError):
    """Exception raised when ONNX Runtime encounters an error."""
    pass


class ImageDecodeError(OcrError):
    """Raised when an input image cannot be decoded."""
    pass


class OcrIOError(OcrError, OSError):
    """Raised when a model or vocabulary file cannot be read."""
    pass
