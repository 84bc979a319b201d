# =============================================================================
# dmonitoring/decoder.py
#
# OutputDecoder — flat model output vector → DriverMonitoringResult fields.
#
# Output layout (OUTPUT_SIZE = 84):
#
#   [ 0 .. 40]  left-hand-drive block   (DRIVER_BLOCK_SIZE = 41)
#   [41 .. 81]  right-hand-drive block  (same layout, offset 41)
#   [82]        poor_vision             sigmoid
#   [83]        wheel_on_right          sigmoid
#
# Per-block layout lives in DRIVER_STATE_FIELDS below. Indices not listed
# there (5, 11, 13..20, 22..29) are produced by the model but unused.
# =============================================================================

from dataclasses import dataclass
from typing import Callable, Tuple, Union
import numpy as np

from config import (
    REG_SCALE, OUTPUT_SIZE, DRIVER_BLOCK_SIZE,
    LHD_BLOCK_OFFSET, RHD_BLOCK_OFFSET,
    POOR_VISION_IDX, WHEEL_ON_RIGHT_IDX,
)
from dmonitoring.data_structures import DriverStateResult
from dmonitoring.errors import OutputSchemaError, EngineOutputError


# ── Transforms ────────────────────────────────────────────────────────────────

def sigmoid(x):
    """Logistic function 1 / (1 + exp(−x)); maps any real value into (0, 1)."""
    return 1.0 / (1.0 + np.exp(-np.asarray(x, dtype=np.float64)))


def reg_scale(x):
    """Normalized regression output → physical units."""
    return np.asarray(x, dtype=np.float64) * REG_SCALE


def log_std_to_std(x):
    """Log-std → std. Strictly positive for any finite input."""
    return np.exp(np.asarray(x, dtype=np.float64))


# ── Decode table ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class OutputField:
    """One named slice of a driver block and the transform applied to it."""
    name: str
    # Index relative to the start of the block
    offset: int
    # Number of consecutive floats; 1 decodes to a scalar, >1 to a tuple
    size: int
    transform: Callable

    @property
    def end(self) -> int:
        return self.offset + self.size


DRIVER_STATE_FIELDS: Tuple[OutputField, ...] = (
    OutputField("orientation",      0,  3, reg_scale),
    OutputField("position",         3,  2, reg_scale),
    OutputField("orientation_std",  6,  3, log_std_to_std),
    OutputField("position_std",     9,  2, log_std_to_std),
    OutputField("face_prob",        12, 1, sigmoid),
    OutputField("left_eye_prob",    21, 1, sigmoid),
    OutputField("right_eye_prob",   30, 1, sigmoid),
    OutputField("left_blink_prob",  31, 1, sigmoid),
    OutputField("right_blink_prob", 32, 1, sigmoid),
    OutputField("sunglasses_prob",  33, 1, sigmoid),
    OutputField("occluded_prob",    34, 1, sigmoid),
    OutputField("ready_prob",       35, 4, sigmoid),
    OutputField("not_ready_prob",   39, 2, sigmoid),
)


def validate_output_table(
    output_size: int,
    fields: Tuple[OutputField, ...] = DRIVER_STATE_FIELDS,
    block_size: int = DRIVER_BLOCK_SIZE,
    block_offsets: Tuple[int, ...] = (LHD_BLOCK_OFFSET, RHD_BLOCK_OFFSET),
    scalar_indices: Tuple[int, ...] = (POOR_VISION_IDX, WHEEL_ON_RIGHT_IDX),
) -> None:
    """
    Check that every field fits its block, fields do not overlap, blocks do
    not overlap each other or the shared scalars, and everything fits in
    output_size.

    Raises:
        OutputSchemaError describing the first violation found.
    """
    taken = set()
    for f in fields:
        if f.size < 1 or f.offset < 0 or f.end > block_size:
            raise OutputSchemaError(
                f"Field {f.name} [{f.offset}:{f.end}] does not fit a {block_size}-float block"
            )
        span = set(range(f.offset, f.end))
        if taken & span:
            raise OutputSchemaError(f"Field {f.name} overlaps another field")
        taken |= span

    used = set()
    for start in block_offsets:
        span = set(range(start, start + block_size))
        if used & span:
            raise OutputSchemaError(f"Block at offset {start} overlaps another block")
        used |= span
    for idx in scalar_indices:
        if idx in used:
            raise OutputSchemaError(f"Scalar index {idx} falls inside a driver block")
        used.add(idx)

    if max(used) >= output_size:
        raise OutputSchemaError(
            f"Decode table needs {max(used) + 1} outputs, engine declares {output_size}"
        )


# ── Decoder ───────────────────────────────────────────────────────────────────

Decoded = Union[float, Tuple[float, ...]]


class OutputDecoder:
    """
    Pure, stateless mapping from the model output vector to driver states.

    Usage:
        dec = OutputDecoder()
        lhd, rhd, poor_vision, wheel_on_right = dec.decode(output)
    """

    def __init__(
        self,
        output_size: int = OUTPUT_SIZE,
        fields: Tuple[OutputField, ...] = DRIVER_STATE_FIELDS,
    ):
        validate_output_table(output_size, fields)
        self.output_size = output_size
        self.fields = fields

    @staticmethod
    def _decode_field(block: np.ndarray, f: OutputField) -> Decoded:
        values = f.transform(block[f.offset:f.end])
        if f.size == 1:
            return float(values[0])
        return tuple(float(v) for v in values)

    def decode_block(self, output, block_offset: int) -> DriverStateResult:
        """
        Decode the DRIVER_BLOCK_SIZE floats starting at block_offset.

        Only output[block_offset : block_offset + DRIVER_BLOCK_SIZE] is read,
        so a stand-alone 41-float slice decodes the same as the full vector.
        """
        out = np.asarray(output)
        if block_offset < 0 or out.shape[0] < block_offset + DRIVER_BLOCK_SIZE:
            raise EngineOutputError(
                f"Output of length {out.shape[0]} has no block at offset {block_offset}"
            )
        block = out[block_offset:block_offset + DRIVER_BLOCK_SIZE]
        return DriverStateResult(**{
            f.name: self._decode_field(block, f) for f in self.fields
        })

    def decode(self, output) -> Tuple[DriverStateResult, DriverStateResult, float, float]:
        """
        Returns:
            (driver_state_lhd, driver_state_rhd, poor_vision, wheel_on_right)
        """
        out = np.asarray(output).reshape(-1)
        if out.shape[0] != self.output_size:
            raise EngineOutputError(
                f"Expected {self.output_size} outputs, got {out.shape[0]}"
            )
        return (
            self.decode_block(out, LHD_BLOCK_OFFSET),
            self.decode_block(out, RHD_BLOCK_OFFSET),
            float(sigmoid(out[POOR_VISION_IDX])),
            float(sigmoid(out[WHEEL_ON_RIGHT_IDX])),
        )
