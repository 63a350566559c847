"""
Model Handler - loads ONNX models and runs them with ONNX Runtime.

ModelLoader turns a path into a ModelSession (or raises ModelLoadError so
the caller can retry); ModelSession implements the InferenceModel protocol.
"""
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
import onnxruntime as ort

from utils.failures import ConfigError, InferenceError, ModelLoadError
from utils.logger import Logger

CPU_PROVIDER = "CPUExecutionProvider"
CUDA_PROVIDER = "CUDAExecutionProvider"

# ONNX element types we can feed directly
_INPUT_DTYPES = {
    "tensor(float)": np.float32,
    "tensor(float16)": np.float16,
    "tensor(double)": np.float64,
    "tensor(uint8)": np.uint8,
}


class ModelSession:
    """A loaded, validated model graph."""

    def __init__(self, session: ort.InferenceSession, path: str):
        self.session = session
        self.path = path
        self.logger = Logger("ModelSession")

        model_input = session.get_inputs()[0]
        self.input_name = model_input.name
        self.input_shape = list(model_input.shape)
        self.input_dtype = _INPUT_DTYPES.get(model_input.type, np.float32)
        self.output_names = [output.name for output in session.get_outputs()]

    def check_input_shape(self, shape: Sequence[int]) -> None:
        """
        Compare the configured tensor shape with the model's declared input.
        Symbolic (named or unknown) model dimensions accept any size.

        Raises:
            ConfigError: Rank or a fixed dimension differs.
        """
        shape = list(shape)
        if len(self.input_shape) != len(shape):
            raise ConfigError(
                f"Model {self.path} expects rank {len(self.input_shape)} input "
                f"{self.input_shape}, configured shape is {shape}"
            )
        for index, (expected, configured) in enumerate(zip(self.input_shape, shape)):
            if isinstance(expected, int) and expected > 0 and expected != configured:
                raise ConfigError(
                    f"Model {self.path} input dim {index} is {expected}, "
                    f"configured shape is {shape}"
                )

    def run(self, tensor: np.ndarray) -> List[np.ndarray]:
        """
        Run the model synchronously on one input tensor.

        Raises:
            InferenceError: The runtime rejected the input or failed.
        """
        if tensor.dtype != self.input_dtype:
            tensor = tensor.astype(self.input_dtype)
        try:
            return self.session.run(None, {self.input_name: tensor})
        except Exception as e:
            raise InferenceError(f"Error during inference: {e}")


class ModelLoader:
    """Loads ONNX models with basic graph optimization on the best provider."""

    def __init__(self, providers: Optional[Sequence[str]] = None):
        """
        Args:
            providers: Preferred execution providers. Unavailable ones are
                       skipped; the CPU provider is always the last fallback.
        """
        self.logger = Logger("ModelLoader")
        self.providers = self._select_providers(providers)
        self.logger.info(f"Using execution providers: {', '.join(self.providers)}")

    def _select_providers(self, requested: Optional[Sequence[str]]) -> List[str]:
        available = ort.get_available_providers()
        if requested:
            selected = [p for p in requested if p in available]
            for missing in (p for p in requested if p not in available):
                self.logger.warning(f"Execution provider not available: {missing}")
        else:
            selected = [CUDA_PROVIDER] if CUDA_PROVIDER in available else []

        if CPU_PROVIDER not in selected:
            selected.append(CPU_PROVIDER)
        return selected

    def load(self, model_path: str) -> ModelSession:
        """
        Load and validate a model artifact.

        Raises:
            ModelLoadError: File missing or rejected by the runtime.
        """
        if not Path(model_path).is_file():
            raise ModelLoadError(f"Model file not found: {model_path}")

        options = ort.SessionOptions()
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_BASIC
        options.log_severity_level = 2  # warnings and above

        try:
            session = ort.InferenceSession(
                str(model_path), sess_options=options, providers=self.providers
            )
        except Exception as e:
            raise ModelLoadError(f"Error loading model from {model_path}: {e}")

        model = ModelSession(session, str(model_path))
        self.logger.info(
            f"Model loaded: {model_path} (input '{model.input_name}' {model.input_shape}, "
            f"{len(model.output_names)} output(s))"
        )
        return model
