# =============================================================================
# dmonitoring/data_structures.py
# Dataclasses that flow between the stages of the driver monitoring pipeline.
#
# RawFrame is supplied per frame by the frame source. The result types are
# built once per frame by the decoder and never mutated afterwards (frozen).
# =============================================================================

from dataclasses import dataclass, field
from typing import Any, Optional, Tuple
import numpy as np

from dmonitoring.errors import FrameDimensionError


# ── Input ─────────────────────────────────────────────────────────────────────

@dataclass
class RawFrame:
    """
    One camera frame as delivered by the frame source.
    Only the luma plane is read; the chroma plane (if any) starts at uv_offset.
    """
    width: int
    height: int
    # Bytes per luma row (>= width)
    stride: int
    # Any buffer-protocol object (bytes, bytearray, memoryview, uint8 ndarray)
    buf: Any
    uv_offset: Optional[int] = None

    @classmethod
    def from_luma(cls, luma: np.ndarray) -> "RawFrame":
        """Wrap a 2-D uint8 luma array (rows may be padded via its strides)."""
        if luma.ndim != 2:
            raise FrameDimensionError(f"Expected a 2-D luma array, got shape {luma.shape}")
        luma = np.ascontiguousarray(luma, dtype=np.uint8)
        h, w = luma.shape
        return cls(width=w, height=h, stride=w, buf=luma)

    @classmethod
    def from_i420(cls, yuv: np.ndarray, width: int, height: int) -> "RawFrame":
        """Wrap a packed I420 buffer (Y plane followed by U and V)."""
        yuv = np.ascontiguousarray(yuv, dtype=np.uint8)
        if yuv.size < width * height * 3 // 2:
            raise FrameDimensionError(
                f"I420 buffer of {yuv.size} bytes is too small for {width}x{height}"
            )
        return cls(width=width, height=height, stride=width,
                   buf=yuv, uv_offset=width * height)

    def luma(self) -> np.ndarray:
        """
        Read-only (height, width) uint8 view of the luma plane.
        No pixel data is copied; row r starts at byte r * stride.
        """
        if self.width <= 0 or self.height <= 0:
            raise FrameDimensionError(f"Invalid frame size {self.width}x{self.height}")
        if self.stride < self.width:
            raise FrameDimensionError(
                f"Stride {self.stride} is smaller than width {self.width}"
            )
        base = np.frombuffer(self.buf, dtype=np.uint8)
        needed = (self.height - 1) * self.stride + self.width
        if base.size < needed:
            raise FrameDimensionError(
                f"Frame buffer holds {base.size} bytes, "
                f"{self.width}x{self.height} stride {self.stride} needs {needed}"
            )
        return np.lib.stride_tricks.as_strided(
            base,
            shape=(self.height, self.width),
            strides=(self.stride, 1),
            writeable=False,
        )


# ── Output ────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DriverStateResult:
    """
    Decoded driver state for one seating-side block of the output vector.
    Regression fields are in physical units, *_std fields are strictly
    positive, every *_prob field is a probability in (0, 1).
    """
    # Head orientation (pitch, yaw, roll) and its uncertainty
    orientation:      Tuple[float, float, float] = (0.0, 0.0, 0.0)
    orientation_std:  Tuple[float, float, float] = (1.0, 1.0, 1.0)
    # Face position in the crop (x, y) and its uncertainty
    position:         Tuple[float, float] = (0.0, 0.0)
    position_std:     Tuple[float, float] = (1.0, 1.0)

    face_prob:        float = 0.5
    left_eye_prob:    float = 0.5
    right_eye_prob:   float = 0.5
    left_blink_prob:  float = 0.5
    right_blink_prob: float = 0.5
    sunglasses_prob:  float = 0.5
    occluded_prob:    float = 0.5

    ready_prob:       Tuple[float, float, float, float] = (0.5, 0.5, 0.5, 0.5)
    not_ready_prob:   Tuple[float, float] = (0.5, 0.5)


@dataclass(frozen=True)
class DriverMonitoringResult:
    """
    Master output of one pipeline evaluation.
    Built fresh per frame, handed to the publisher, then discarded.
    """
    driver_state_lhd: DriverStateResult = field(default_factory=DriverStateResult)
    driver_state_rhd: DriverStateResult = field(default_factory=DriverStateResult)
    # Shared scalars (not duplicated per block)
    poor_vision:      float = 0.5
    wheel_on_right:   float = 0.5
    # Wall-clock seconds: whole evaluation, and the blocking execute() alone
    model_execution_time: float = 0.0
    dsp_execution_time:   float = 0.0
