"""
End-to-end test of the main.py frame loop on a raw .yuv recording,
with the engine replaced by FakeEngine and the bus by an in-memory stub.
"""

import numpy as np
import pytest

import main
from config import OUTPUT_SIZE
from dmonitoring.dmonitoring_model import DMonitoringModel
from conftest import FakeEngine


@pytest.fixture
def recording(tmp_path):
    width, height = 16, 8
    path = tmp_path / "drive.yuv"
    frame = np.zeros(width * height * 3 // 2, dtype=np.uint8)
    path.write_bytes(frame.tobytes() * 3)
    return str(path), width, height


@pytest.fixture
def published(monkeypatch):
    sent = []
    engine = FakeEngine(output=np.zeros(OUTPUT_SIZE, dtype=np.float32))

    def fake_from_config(cls, params=None, backend=None, model_path=None, use_accelerator=True):
        return DMonitoringModel(engine, is_rhd=params.get_bool("IsRHD"),
                                model_width=8, model_height=4)

    monkeypatch.setattr(DMonitoringModel, "from_config", classmethod(fake_from_config))

    class StubServer:
        def start_background(self):
            raise AssertionError("--no-server must not bind a port")

        def send(self, channel, msg):
            sent.append((channel, msg))

        def latest_calibration(self, default=None):
            return np.zeros(3, dtype=np.float32) if default is None else default

        def stop(self):
            pass

    monkeypatch.setattr(main, "WebSocketServer", StubServer)
    return sent


def _args(recording, tmp_path, *extra):
    path, width, height = recording
    return main.parse_args([
        "--yuv", path, "--width", str(width), "--height", str(height),
        "--no-server", "--params-dir", str(tmp_path / "params"), *extra,
    ])


class TestMainLoop:
    def test_publishes_every_frame(self, recording, tmp_path, published):
        n = main.run(_args(recording, tmp_path))
        assert n == 3
        assert [msg["frameId"] for _, msg in published] == [0, 1, 2]
        assert all(channel == "driverState" for channel, _ in published)
        assert all("rawPredictions" not in msg for _, msg in published)

    def test_max_frames(self, recording, tmp_path, published):
        assert main.run(_args(recording, tmp_path, "--max-frames", "2")) == 2
        assert len(published) == 2

    def test_raw_predictions_attached(self, recording, tmp_path, published):
        main.run(_args(recording, tmp_path, "--send-raw-pred"))
        assert all(len(msg["rawPredictions"]) == OUTPUT_SIZE * 4 for _, msg in published)

    def test_dump_input(self, recording, tmp_path, published):
        dump = tmp_path / "input.bin"
        main.run(_args(recording, tmp_path, "--dump-input", str(dump)))
        assert np.fromfile(dump, dtype=np.float32).size == 32

    def test_missing_source(self, tmp_path, published):
        args = main.parse_args(["--yuv", str(tmp_path / "none.yuv"), "--no-server",
                                "--params-dir", str(tmp_path)])
        assert main.run(args) == 0
        assert published == []
