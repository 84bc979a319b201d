# =============================================================================
# dmonitoring/engine.py
#
# InferenceEngine — call contract around the external forward pass.
#
#   set_calibration(calib)   store CALIB_LEN extrinsic floats
#   load_tensor(tensor, n)   stage the preprocessed input
#   execute()                blocking forward pass → self.output overwritten
#
# Two interchangeable backends, picked by configuration:
#   ONNXEngine   — portable ONNX Runtime session (CPU, optional CUDA provider)
#   TorchEngine  — quantized TorchScript module on the best torch device
#
# Both copy their result into the same pre-allocated float32 output vector,
# whose length is checked against the declared OUTPUT_SIZE on every call.
# =============================================================================

import os
from abc import ABC, abstractmethod
from typing import Optional, Sequence, Tuple
import numpy as np

from config import (
    OUTPUT_SIZE, CALIB_LEN,
    ENGINE_BACKEND, ENGINE_USE_ACCELERATOR,
    ONNX_MODEL_PATH, TORCH_MODEL_PATH,
)
from dmonitoring.errors import EngineOutputError
from core.logger import get_logger

log = get_logger(__name__)


class InferenceEngine(ABC):
    """
    Base class holding the staged input, the calibration vector and the
    output vector. Subclasses only implement _run().
    """

    name = "base"

    def __init__(self, output_size: int = OUTPUT_SIZE, calib_len: int = CALIB_LEN):
        self._output = np.zeros(output_size, dtype=np.float32)
        self._calib  = np.zeros(calib_len, dtype=np.float32)
        self._input: Optional[np.ndarray] = None

    # ── Contract ──────────────────────────────────────────────────────────────

    def set_calibration(self, calib: Sequence[float]) -> None:
        """Copy the calibration vector; it is used by every later execute()."""
        arr = np.asarray(calib, dtype=np.float32).reshape(-1)
        if arr.size != self._calib.size:
            raise ValueError(
                f"Calibration must have {self._calib.size} values, got {arr.size}"
            )
        self._calib[:] = arr

    def load_tensor(self, tensor: np.ndarray, length: Optional[int] = None) -> None:
        """Stage the first `length` floats of tensor (all of it by default)."""
        flat = np.asarray(tensor, dtype=np.float32).reshape(-1)
        if length is not None:
            if length > flat.size:
                raise ValueError(f"length {length} exceeds tensor size {flat.size}")
            flat = flat[:length]
        self._input = flat

    def execute(self) -> np.ndarray:
        """
        Run the forward pass on the staged tensor and calibration.

        Returns:
            The engine-owned output vector (overwritten by the next call).
        """
        if self._input is None:
            raise EngineOutputError("execute() called before load_tensor()")
        raw = np.asarray(self._run(self._input, self._calib), dtype=np.float32).reshape(-1)
        if raw.size != self._output.size:
            raise EngineOutputError(
                f"{self.name} engine returned {raw.size} values, "
                f"expected {self._output.size}"
            )
        self._output[:] = raw
        return self._output

    @abstractmethod
    def _run(self, tensor: np.ndarray, calib: np.ndarray) -> np.ndarray:
        """Backend-specific forward pass."""

    def close(self) -> None:
        """Release backend resources."""

    # ── Accessors ─────────────────────────────────────────────────────────────

    @property
    def output(self) -> np.ndarray:
        return self._output

    @property
    def output_size(self) -> int:
        return int(self._output.size)

    @property
    def calib(self) -> np.ndarray:
        return self._calib


def _check_model_path(path: str) -> None:
    if not os.path.exists(path):
        raise FileNotFoundError(f"Driver monitoring model not found: {path}")


def _reshape_for(tensor: np.ndarray, shape: Tuple) -> np.ndarray:
    """Reshape to a declared input shape, falling back to (1, N) for dynamic dims."""
    if shape and all(isinstance(d, int) and d > 0 for d in shape) \
            and int(np.prod(shape)) == tensor.size:
        return tensor.reshape(shape)
    return tensor.reshape(1, -1)


# ── Portable backend ──────────────────────────────────────────────────────────

class ONNXEngine(InferenceEngine):
    """
    ONNX Runtime backend. The model's first input receives the image tensor,
    the optional second input receives the calibration vector.

    Usage:
        eng = ONNXEngine("models/dmonitoring_model.onnx")
    """

    name = "onnx"

    def __init__(
        self,
        model_path: str = ONNX_MODEL_PATH,
        use_accelerator: bool = ENGINE_USE_ACCELERATOR,
        output_size: int = OUTPUT_SIZE,
        calib_len: int = CALIB_LEN,
        session=None,
    ):
        super().__init__(output_size, calib_len)
        self.model_path = model_path
        self._session = session if session is not None \
            else self._load_session(model_path, use_accelerator)

        inputs = self._session.get_inputs()
        self._image_input = inputs[0]
        self._calib_input = inputs[1] if len(inputs) > 1 else None
        log.info(
            f"ONNXEngine ready (inputs={[i.name for i in inputs]}, "
            f"calib={'yes' if self._calib_input is not None else 'no'})"
        )

    @staticmethod
    def _load_session(model_path: str, use_accelerator: bool):
        _check_model_path(model_path)
        import onnxruntime as ort

        providers = []
        if use_accelerator:
            providers.append("CUDAExecutionProvider")
        providers.append("CPUExecutionProvider")
        available = ort.get_available_providers()
        providers = [p for p in providers if p in available] or ["CPUExecutionProvider"]

        log.info(f"Loading ONNX model {model_path} (providers={providers})")
        return ort.InferenceSession(model_path, providers=providers)

    def _run(self, tensor: np.ndarray, calib: np.ndarray) -> np.ndarray:
        feeds = {self._image_input.name: _reshape_for(tensor, tuple(self._image_input.shape))}
        if self._calib_input is not None:
            feeds[self._calib_input.name] = _reshape_for(calib, tuple(self._calib_input.shape))
        return self._session.run(None, feeds)[0]

    def close(self) -> None:
        self._session = None


# ── Accelerated backend ───────────────────────────────────────────────────────

class TorchEngine(InferenceEngine):
    """
    TorchScript backend. The scripted module is called as
    module(image, calib) with image shaped `input_shape` and calib (1, CALIB_LEN).

    Usage:
        eng = TorchEngine("models/dmonitoring_model_q.pt")
    """

    name = "torch"

    def __init__(
        self,
        model_path: str = TORCH_MODEL_PATH,
        use_accelerator: bool = ENGINE_USE_ACCELERATOR,
        output_size: int = OUTPUT_SIZE,
        calib_len: int = CALIB_LEN,
        input_shape: Tuple[int, ...] = (1, -1),
    ):
        super().__init__(output_size, calib_len)
        _check_model_path(model_path)
        import torch

        self.model_path  = model_path
        self.input_shape = input_shape
        self._torch      = torch

        # Select device: MPS (Apple Silicon) > CUDA > CPU
        if use_accelerator and torch.backends.mps.is_available():
            self._device = "mps"
        elif use_accelerator and torch.cuda.is_available():
            self._device = "cuda"
        else:
            self._device = "cpu"

        log.info(f"Loading TorchScript model {model_path} (device={self._device})")
        self._model = torch.jit.load(model_path, map_location=self._device)
        self._model.eval()
        log.info("TorchEngine ready.")

    @property
    def device(self) -> str:
        return self._device

    def _run(self, tensor: np.ndarray, calib: np.ndarray) -> np.ndarray:
        torch = self._torch
        with torch.inference_mode():
            img = torch.from_numpy(tensor).to(self._device).reshape(self.input_shape)
            cal = torch.from_numpy(calib).to(self._device).reshape(1, -1)
            out = self._model(img, cal)
            if isinstance(out, (tuple, list)):
                out = out[0]
            return out.float().cpu().numpy()

    def close(self) -> None:
        self._model = None


# ── Factory ───────────────────────────────────────────────────────────────────

ENGINE_BACKENDS = {
    ONNXEngine.name:  ONNXEngine,
    TorchEngine.name: TorchEngine,
}


def build_engine(
    backend: str = ENGINE_BACKEND,
    model_path: Optional[str] = None,
    use_accelerator: bool = ENGINE_USE_ACCELERATOR,
) -> InferenceEngine:
    """Instantiate the configured backend with its default model file."""
    try:
        engine_cls = ENGINE_BACKENDS[backend]
    except KeyError:
        raise ValueError(
            f"Unknown engine backend {backend!r}; choose from {sorted(ENGINE_BACKENDS)}"
        ) from None

    kwargs = {"use_accelerator": use_accelerator}
    if model_path is not None:
        kwargs["model_path"] = model_path
    log.info(f"Building {backend} inference engine")
    return engine_cls(**kwargs)
