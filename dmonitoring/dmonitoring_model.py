# =============================================================================
# dmonitoring/dmonitoring_model.py
#
# DMonitoringModel — per-frame orchestrator.
#
# Call flow per frame (synchronous, on the calling thread):
#   1. FramePreprocessor.prepare(frame)      → float tensor (scratch buffer)
#   2. engine.set_calibration(calib)
#   3. engine.load_tensor(tensor)
#   4. engine.execute()                      → output vector   [timed: dsp]
#   5. OutputDecoder.decode(output)          → lhd, rhd, poor_vision, wheel_on_right
#   6. Pack everything into DriverMonitoringResult and return
#
# One instance owns one scratch buffer and one engine output vector, so
# calls on the same instance must be serialized. Use one instance per
# concurrent stream.
# =============================================================================

import time
from typing import Optional, Sequence
import numpy as np

from config import (
    MODEL_WIDTH, MODEL_HEIGHT, PARAM_IS_RHD,
    ENGINE_BACKEND, ENGINE_USE_ACCELERATOR,
)
from core.params import Params
from dmonitoring.data_structures import RawFrame, DriverMonitoringResult
from dmonitoring.decoder import OutputDecoder
from dmonitoring.engine import InferenceEngine, build_engine
from dmonitoring.preprocessor import FramePreprocessor
from core.logger import get_logger

log = get_logger(__name__)


class DMonitoringModel:
    """
    Single entry point for driver monitoring inference.

    Usage:
        model = DMonitoringModel.from_config()
        result = model.eval_frame(raw_frame, calib)   # DriverMonitoringResult
        model.close()
    """

    def __init__(
        self,
        engine: InferenceEngine,
        is_rhd: bool = False,
        model_width:  int = MODEL_WIDTH,
        model_height: int = MODEL_HEIGHT,
    ):
        self._engine       = engine
        self._is_rhd       = bool(is_rhd)
        self._preprocessor = FramePreprocessor(model_width, model_height)
        self._decoder      = OutputDecoder(output_size=engine.output_size)
        self._frame_count  = 0

        log.info(
            f"DMonitoringModel initialized (engine={engine.name}, "
            f"input={model_width}x{model_height}, is_rhd={self._is_rhd})"
        )

    @classmethod
    def from_config(
        cls,
        params: Optional[Params] = None,
        backend: str = ENGINE_BACKEND,
        model_path: Optional[str] = None,
        use_accelerator: bool = ENGINE_USE_ACCELERATOR,
    ) -> "DMonitoringModel":
        """Read IsRHD once from the params store and build the configured engine."""
        params = params if params is not None else Params()
        is_rhd = params.get_bool(PARAM_IS_RHD)
        engine = build_engine(backend, model_path=model_path, use_accelerator=use_accelerator)
        return cls(engine, is_rhd=is_rhd)

    # ── Main Update ───────────────────────────────────────────────────────────

    def eval_frame(self, frame: RawFrame, calib: Sequence[float]) -> DriverMonitoringResult:
        """
        Run one frame through crop → engine → decode.

        Args:
            frame: Raw luma frame, at least model_width x model_height
            calib: CALIB_LEN extrinsic calibration floats

        Returns:
            DriverMonitoringResult for this frame.

        Raises:
            FrameDimensionError if the frame is too small; engine errors propagate.
        """
        t_start = time.perf_counter()

        tensor = self._preprocessor.prepare(frame)
        self._engine.set_calibration(calib)
        self._engine.load_tensor(tensor, tensor.size)

        t1 = time.perf_counter()
        output = self._engine.execute()
        t2 = time.perf_counter()

        lhd, rhd, poor_vision, wheel_on_right = self._decoder.decode(output)
        self._frame_count += 1

        return DriverMonitoringResult(
            driver_state_lhd     = lhd,
            driver_state_rhd     = rhd,
            poor_vision          = poor_vision,
            wheel_on_right       = wheel_on_right,
            model_execution_time = time.perf_counter() - t_start,
            dsp_execution_time   = t2 - t1,
        )

    # ── Debug / export ────────────────────────────────────────────────────────

    def raw_predictions(self) -> bytes:
        """Bytes of the current engine output vector (float32, native order)."""
        return self._engine.output.tobytes()

    def dump_input(self, path: str) -> None:
        """Write the last preprocessed tensor to path as raw float32."""
        tensor = self._preprocessor.scratch.view()
        tensor.astype(np.float32, copy=False).tofile(path)
        log.info(f"Dumped {tensor.size} input floats → {path}")

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def close(self) -> None:
        self._engine.close()
        log.info("DMonitoringModel closed.")

    def __enter__(self):
        return self

    def __exit__(self, *_):
        self.close()

    # ── Utility ───────────────────────────────────────────────────────────────

    @property
    def is_rhd(self) -> bool:
        """Right-hand-drive flag captured at construction. Not used for block selection."""
        return self._is_rhd

    @property
    def engine(self) -> InferenceEngine:
        return self._engine

    @property
    def preprocessor(self) -> FramePreprocessor:
        return self._preprocessor

    @property
    def frame_count(self) -> int:
        return self._frame_count
