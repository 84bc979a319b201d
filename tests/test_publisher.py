"""
Unit tests for dmonitoring/publisher.py.
"""

import numpy as np
import pytest

from config import OUTPUT_SIZE, PUBLISH_CHANNEL
from dmonitoring.data_structures import DriverStateResult, DriverMonitoringResult
from dmonitoring.publisher import ResultPublisher, build_driver_state_message, fill_driver_data

DRIVER_DATA_KEYS = {
    "orientation", "orientationStd", "position", "positionStd",
    "faceProb", "leftEyeProb", "rightEyeProb", "leftBlinkProb",
    "rightBlinkProb", "sunglassesProb", "occludedProb",
    "readyProb", "notReadyProb",
}


def _result() -> DriverMonitoringResult:
    lhd = DriverStateResult(orientation=(0.1, 0.2, 0.3), face_prob=0.9,
                            ready_prob=(0.1, 0.2, 0.3, 0.4))
    rhd = DriverStateResult(position=(-0.5, 0.5), occluded_prob=0.25)
    return DriverMonitoringResult(
        driver_state_lhd=lhd, driver_state_rhd=rhd,
        poor_vision=0.3, wheel_on_right=0.7,
        model_execution_time=0.040, dsp_execution_time=0.025,
    )


class TestMessage:
    def test_top_level_fields(self):
        msg = build_driver_state_message(17, _result(), 0.05)
        assert msg["frameId"] == 17
        assert msg["modelExecutionTime"] == pytest.approx(0.05)
        assert msg["dspExecutionTime"] == pytest.approx(0.025)
        assert msg["poorVision"] == 0.3
        assert msg["wheelOnRight"] == 0.7
        assert "rawPredictions" not in msg

    def test_driver_blocks(self):
        msg = build_driver_state_message(0, _result(), 0.0)
        lh, rh = msg["driverDataLH"], msg["driverDataRH"]
        assert set(lh) == DRIVER_DATA_KEYS
        assert set(rh) == DRIVER_DATA_KEYS
        assert lh["orientation"] == [0.1, 0.2, 0.3]
        assert lh["faceProb"] == 0.9
        assert lh["readyProb"] == [0.1, 0.2, 0.3, 0.4]
        assert rh["position"] == [-0.5, 0.5]
        assert rh["occludedProb"] == 0.25

    def test_fill_driver_data_lengths(self):
        data = fill_driver_data(DriverStateResult())
        assert len(data["orientation"]) == 3
        assert len(data["orientationStd"]) == 3
        assert len(data["position"]) == 2
        assert len(data["positionStd"]) == 2
        assert len(data["readyProb"]) == 4
        assert len(data["notReadyProb"]) == 2


class TestResultPublisher:
    def test_sends_on_fixed_channel(self, bus):
        pub = ResultPublisher(bus, send_raw_pred=False)
        pub.publish(3, _result(), 0.04)
        assert len(bus.sent) == 1
        channel, msg = bus.sent[0]
        assert channel == PUBLISH_CHANNEL == "driverState"
        assert msg["frameId"] == 3
        assert pub.messages_sent == 1

    def test_raw_field_absent_when_disabled(self, bus):
        pub = ResultPublisher(bus, send_raw_pred=False)
        msg = pub.publish(0, _result(), 0.0, raw_pred=b"\x00" * 8)
        assert "rawPredictions" not in msg

    def test_raw_field_length_when_enabled(self, bus):
        pub = ResultPublisher(bus, send_raw_pred=True)
        output = np.linspace(-1, 1, OUTPUT_SIZE).astype(np.float32)
        msg = pub.publish(0, _result(), 0.0, raw_pred=output)
        assert len(msg["rawPredictions"]) == output.nbytes == OUTPUT_SIZE * 4
        np.testing.assert_array_equal(np.frombuffer(msg["rawPredictions"], np.float32), output)

    def test_raw_bytes_passed_through(self, bus):
        pub = ResultPublisher(bus, send_raw_pred=True)
        raw = np.ones(OUTPUT_SIZE, dtype=np.float32).tobytes()
        msg = pub.publish(0, _result(), 0.0, raw_pred=raw)
        assert msg["rawPredictions"] == raw

    def test_enabled_without_predictions_omits_field(self, bus):
        pub = ResultPublisher(bus, send_raw_pred=True)
        msg = pub.publish(0, _result(), 0.0)
        assert "rawPredictions" not in msg

    def test_execution_time_defaults_to_result(self, bus):
        msg = ResultPublisher(bus).publish(0, _result())
        assert msg["modelExecutionTime"] == pytest.approx(0.040)
