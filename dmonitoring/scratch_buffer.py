# =============================================================================
# dmonitoring/scratch_buffer.py
#
# Owned, grow-only float buffer backing the model input tensor.
#
# capacity — number of elements actually allocated (never decreases)
# length   — number of elements handed out by the last get()
#
# Reallocation only happens when a request exceeds the current capacity,
# and then to exactly the requested size. Steady-state frames of a fixed
# model size therefore reuse the same memory every call.
# =============================================================================

import numpy as np

from core.logger import get_logger

log = get_logger(__name__)


class ScratchBuffer:
    """
    Usage:
        buf = ScratchBuffer()
        view = buf.get(1440 * 960)    # float32 view of exactly that length
    """

    def __init__(self, dtype=np.float32):
        self._data = np.empty(0, dtype=dtype)
        self._length = 0

    def get(self, size: int) -> np.ndarray:
        """Return a writable view of `size` elements, growing if needed."""
        if size < 0:
            raise ValueError(f"Scratch size must be non-negative, got {size}")
        if self._data.size < size:
            log.debug(f"ScratchBuffer grow {self._data.size} → {size}")
            self._data = np.empty(size, dtype=self._data.dtype)
        self._length = size
        return self._data[:size]

    @property
    def capacity(self) -> int:
        return int(self._data.size)

    @property
    def length(self) -> int:
        return self._length

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    def view(self) -> np.ndarray:
        """The region handed out by the most recent get()."""
        return self._data[:self._length]
