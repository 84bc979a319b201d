# =============================================================================
# dmonitoring/preprocessor.py
#
# FramePreprocessor — luma crop → normalized float tensor.
#
# Crop geometry (no resampling, pure crop):
#   v_off = height − MODEL_HEIGHT          keep the bottom rows
#   h_off = (width − MODEL_WIDTH) // 2     centered horizontally
#
#   tensor[r, c] = luma[v_off + r, h_off + c] / 255     (float32, row-major)
#
# The tensor lives in a ScratchBuffer owned by the preprocessor, so the
# returned array is only valid until the next prepare() call.
# =============================================================================

from typing import Tuple
import numpy as np

from config import MODEL_WIDTH, MODEL_HEIGHT
from dmonitoring.data_structures import RawFrame
from dmonitoring.errors import FrameDimensionError
from dmonitoring.scratch_buffer import ScratchBuffer

_BYTE_SCALE = np.float32(255.0)


class FramePreprocessor:
    """
    Usage:
        pre = FramePreprocessor()
        tensor = pre.prepare(raw_frame)    # shape (MODEL_WIDTH * MODEL_HEIGHT,)
    """

    def __init__(
        self,
        model_width:  int = MODEL_WIDTH,
        model_height: int = MODEL_HEIGHT,
    ):
        self.model_width  = model_width
        self.model_height = model_height
        self._scratch     = ScratchBuffer(np.float32)

    @property
    def tensor_size(self) -> int:
        return self.model_width * self.model_height

    @property
    def scratch(self) -> ScratchBuffer:
        return self._scratch

    def crop_offsets(self, width: int, height: int) -> Tuple[int, int]:
        """
        Returns:
            (v_off, h_off) for a frame of the given size.

        Raises:
            FrameDimensionError if the frame is smaller than the model input.
        """
        if width < self.model_width or height < self.model_height:
            raise FrameDimensionError(
                f"Frame {width}x{height} is smaller than model input "
                f"{self.model_width}x{self.model_height}"
            )
        return height - self.model_height, (width - self.model_width) // 2

    def prepare(self, frame: RawFrame) -> np.ndarray:
        """
        Crop and scale one frame into the scratch tensor.

        Returns:
            Float32 1-D array of exactly model_width * model_height values in [0, 1].
        """
        v_off, h_off = self.crop_offsets(frame.width, frame.height)
        luma = frame.luma()

        crop = luma[v_off:v_off + self.model_height,
                    h_off:h_off + self.model_width]

        tensor = self._scratch.get(self.tensor_size)
        np.divide(crop, _BYTE_SCALE,
                  out=tensor.reshape(self.model_height, self.model_width),
                  dtype=np.float32)
        return tensor
