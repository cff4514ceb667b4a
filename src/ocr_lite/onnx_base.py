"""Inference engine interface and its ONNX Runtime implementation."""

import logging
import threading
import traceback
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional, Union

import numpy as np
import onnxruntime
from onnxruntime import GraphOptimizationLevel, SessionOptions
from onnxruntime.capi import _pybind_state as C

from .errors import InferenceError, OcrIOError

logger = logging.getLogger(__name__)

SessionOptionsHook = Callable[[SessionOptions], SessionOptions]


class InferenceEngine(ABC):
    """Anything that maps an NCHW float32 tensor to an output tensor."""

    @abstractmethod
    def infer(self, tensor: np.ndarray) -> np.ndarray:
        """Run the model on ``tensor`` and return its first output."""


class ONNXInferenceBase(InferenceEngine):
    """ONNX Runtime session with hardware acceleration."""

    def __init__(
        self,
        model: Union[str, Path, bytes],
        num_threads: int = -1,
        use_gpu: bool = False,
        session_options_hook: Optional[SessionOptionsHook] = None,
    ):
        """Initialize ONNX Runtime session.

        Args:
            model: Path to ONNX model file, or the serialized model bytes
            num_threads: Number of intra/inter op threads (-1 for auto)
            use_gpu: Enable CUDA GPU acceleration
            session_options_hook: Callable that may adjust the session options
        """
        if isinstance(model, (bytes, bytearray)):
            self.model_path = None
            model_source = bytes(model)
        else:
            self.model_path = Path(model)
            if not self.model_path.is_file():
                raise OcrIOError(f"Model not found: {model}")
            model_source = str(self.model_path)

        sess_opt = self._init_sess_opt(num_threads)
        if session_options_hook is not None:
            sess_opt = session_options_hook(sess_opt)

        # Setup providers (CUDA > CPU)
        providers = self._get_providers(use_gpu)

        try:
            self.session = onnxruntime.InferenceSession(
                model_source,
                sess_options=sess_opt,
                providers=providers,
            )
        except Exception as e:
            raise InferenceError(f"Failed to load model {self.model_path or '<bytes>'}: {e}") from e

        # Cache input/output names
        self.input_names = [node.name for node in self.session.get_inputs()]
        self.output_names = [node.name for node in self.session.get_outputs()]

        logger.info(
            "Loaded %s (threads=%s, providers=%s)",
            self.model_path or "model from memory",
            num_threads,
            self.session.get_providers(),
        )

    @staticmethod
    def _init_sess_opt(num_threads: int) -> SessionOptions:
        sess_opt = SessionOptions()
        sess_opt.log_severity_level = 4
        sess_opt.graph_optimization_level = GraphOptimizationLevel.ORT_ENABLE_EXTENDED

        if num_threads != -1:
            sess_opt.intra_op_num_threads = num_threads
            sess_opt.inter_op_num_threads = num_threads

        return sess_opt

    @staticmethod
    def _get_providers(use_gpu: bool) -> List:
        """Get execution providers based on hardware availability.

        Priority: CUDA > CPU
        """
        available_providers = C.get_available_providers()
        providers = []

        if use_gpu and "CUDAExecutionProvider" in available_providers:
            providers.append((
                'CUDAExecutionProvider',
                {"cudnn_conv_algo_search": "DEFAULT"}
            ))

        # CPU (always available as fallback)
        providers.append('CPUExecutionProvider')

        return providers

    def run(self, input_data: dict) -> List:
        """Run inference on input data.

        Args:
            input_data: Dictionary mapping input names to numpy arrays

        Returns:
            List of output arrays
        """
        try:
            return self.session.run(self.output_names, input_feed=input_data)
        except Exception as e:
            raise InferenceError(traceback.format_exc()) from e

    def get_input_feed(self, image_array: np.ndarray) -> dict:
        return {self.input_names[0]: image_array}

    def infer(self, tensor: np.ndarray) -> np.ndarray:
        return self.run(self.get_input_feed(tensor))[0]


class SerializedEngine(InferenceEngine):
    """Funnels calls to an engine that does not tolerate concurrent use."""

    def __init__(self, engine: InferenceEngine):
        self.engine = engine
        self._lock = threading.Lock()

    def infer(self, tensor: np.ndarray) -> np.ndarray:
        with self._lock:
            return self.engine.infer(tensor)
