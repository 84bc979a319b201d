"""
Shared fixtures for the driver monitoring tests.

FakeEngine stands in for a real backend: it returns a fixed output vector
and records what it was fed, so the pipeline can be tested without model
files.
"""

import numpy as np
import pytest

from config import OUTPUT_SIZE, CALIB_LEN
from dmonitoring.data_structures import RawFrame
from dmonitoring.engine import InferenceEngine


class FakeEngine(InferenceEngine):
    name = "fake"

    def __init__(self, output=None, output_size=OUTPUT_SIZE, calib_len=CALIB_LEN):
        super().__init__(output_size, calib_len)
        if output is None:
            output = np.zeros(output_size, dtype=np.float32)
        self.next_output = np.asarray(output, dtype=np.float32)
        self.calls = []
        self.closed = False

    def _run(self, tensor, calib):
        self.calls.append((tensor.copy(), calib.copy()))
        return self.next_output

    def close(self):
        self.closed = True


class RecordingBus:
    """MessageBus that keeps every (channel, message) it is given."""

    def __init__(self):
        self.sent = []

    def send(self, channel, message):
        self.sent.append((channel, message))


def gradient_frame(width, height, stride=None):
    """
    Luma frame whose pixel encodes its own position:
    value = (7 * row + 3 * col) % 256. Padding bytes past width are 255.
    """
    stride = stride or width
    buf = np.full((height, stride), 255, dtype=np.uint8)
    rows = np.arange(height)[:, None]
    cols = np.arange(width)[None, :]
    buf[:, :width] = (7 * rows + 3 * cols) % 256
    return RawFrame(width=width, height=height, stride=stride, buf=buf.tobytes())


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def bus():
    return RecordingBus()
