"""
Integration tests for dmonitoring/dmonitoring_model.py using FakeEngine.
"""

import dataclasses
import time

import numpy as np
import pytest

from config import OUTPUT_SIZE, MODEL_WIDTH, MODEL_HEIGHT, PARAM_IS_RHD
from core.params import Params
from dmonitoring.dmonitoring_model import DMonitoringModel
from dmonitoring.errors import FrameDimensionError, OutputSchemaError
from dmonitoring.decoder import OutputDecoder
from conftest import FakeEngine, gradient_frame


def _small_model(engine=None, **kwargs) -> DMonitoringModel:
    return DMonitoringModel(engine or FakeEngine(), model_width=8, model_height=4, **kwargs)


class SlowEngine(FakeEngine):
    def _run(self, tensor, calib):
        time.sleep(0.02)
        return super()._run(tensor, calib)


class TestEvalFrame:
    def test_result_matches_decoder(self):
        rng = np.random.default_rng(7)
        output = rng.normal(size=OUTPUT_SIZE).astype(np.float32)
        model = _small_model(FakeEngine(output=output))

        result = model.eval_frame(gradient_frame(12, 6), [0.0, 0.0, 0.0])
        lhd, rhd, pv, wor = OutputDecoder().decode(output)

        assert result.driver_state_lhd == lhd
        assert result.driver_state_rhd == rhd
        assert result.poor_vision == pv
        assert result.wheel_on_right == wor

    def test_engine_receives_cropped_tensor_and_calib(self):
        engine = FakeEngine()
        model = _small_model(engine)
        frame = gradient_frame(12, 6)
        model.eval_frame(frame, [0.01, 0.02, 0.03])

        tensor, calib = engine.calls[-1]
        assert tensor.size == 32
        # first crop pixel is source row 2, col 2
        assert tensor[0] == pytest.approx(((7 * 2 + 3 * 2) % 256) / 255.0)
        np.testing.assert_allclose(calib, [0.01, 0.02, 0.03], rtol=1e-6)

    def test_zero_output_gives_half_probabilities(self):
        result = _small_model().eval_frame(gradient_frame(8, 4), [0, 0, 0])
        assert result.poor_vision == pytest.approx(0.5)
        assert result.wheel_on_right == pytest.approx(0.5)
        assert result.driver_state_lhd.occluded_prob == pytest.approx(0.5)
        assert result.driver_state_rhd.orientation == (0.0, 0.0, 0.0)

    def test_timings(self):
        model = _small_model(SlowEngine())
        result = model.eval_frame(gradient_frame(8, 4), [0, 0, 0])
        assert result.dsp_execution_time >= 0.015
        assert result.model_execution_time >= result.dsp_execution_time

    def test_result_is_immutable(self):
        result = _small_model().eval_frame(gradient_frame(8, 4), [0, 0, 0])
        with pytest.raises(dataclasses.FrozenInstanceError):
            result.poor_vision = 1.0

    def test_small_frame_fails_before_engine(self):
        engine = FakeEngine()
        model = _small_model(engine)
        with pytest.raises(FrameDimensionError):
            model.eval_frame(gradient_frame(7, 4), [0, 0, 0])
        assert engine.calls == []

    def test_engine_failure_propagates(self):
        class BrokenEngine(FakeEngine):
            def _run(self, tensor, calib):
                raise RuntimeError("accelerator fault")

        model = _small_model(BrokenEngine())
        with pytest.raises(RuntimeError, match="accelerator fault"):
            model.eval_frame(gradient_frame(8, 4), [0, 0, 0])
        assert model.frame_count == 0

    def test_engine_output_size_validated_at_construction(self):
        with pytest.raises(OutputSchemaError):
            _small_model(FakeEngine(output_size=80))

    def test_scratch_capacity_stable_across_frames(self):
        model = _small_model()
        for w, h in [(8, 4), (64, 32), (9, 4)]:
            model.eval_frame(gradient_frame(w, h), [0, 0, 0])
        assert model.preprocessor.scratch.capacity == 32
        assert model.frame_count == 3

    def test_default_model_geometry(self):
        model = DMonitoringModel(FakeEngine())
        model.eval_frame(gradient_frame(1928, 1208), [0, 0, 0])
        tensor, _ = model.engine.calls[-1]
        assert tensor.size == MODEL_WIDTH * MODEL_HEIGHT


class TestExports:
    def test_raw_predictions_bytes(self):
        output = np.arange(OUTPUT_SIZE, dtype=np.float32)
        model = _small_model(FakeEngine(output=output))
        model.eval_frame(gradient_frame(8, 4), [0, 0, 0])
        raw = model.raw_predictions()
        assert len(raw) == OUTPUT_SIZE * 4
        np.testing.assert_array_equal(np.frombuffer(raw, dtype=np.float32), output)

    def test_dump_input(self, tmp_path):
        model = _small_model()
        model.eval_frame(gradient_frame(8, 4), [0, 0, 0])
        path = tmp_path / "rawdump.bin"
        model.dump_input(str(path))
        dumped = np.fromfile(path, dtype=np.float32)
        assert dumped.size == 32
        assert dumped[1] == pytest.approx(3 / 255.0)


class TestConfiguration:
    def test_is_rhd_is_fixed_at_construction(self):
        model = _small_model(is_rhd=True)
        assert model.is_rhd is True
        with pytest.raises(AttributeError):
            model.is_rhd = False

    def test_both_blocks_decoded_regardless_of_rhd(self):
        output = np.zeros(OUTPUT_SIZE, dtype=np.float32)
        output[41 + 12] = 3.0
        for is_rhd in (False, True):
            result = _small_model(FakeEngine(output=output), is_rhd=is_rhd).eval_frame(
                gradient_frame(8, 4), [0, 0, 0])
            assert result.driver_state_lhd.face_prob == pytest.approx(0.5)
            assert result.driver_state_rhd.face_prob > 0.9

    def test_from_config_reads_params_once(self, tmp_path, monkeypatch):
        params = Params(str(tmp_path))
        params.put_bool(PARAM_IS_RHD, True)
        monkeypatch.setattr(
            "dmonitoring.dmonitoring_model.build_engine",
            lambda backend, model_path=None, use_accelerator=True: FakeEngine(),
        )
        model = DMonitoringModel.from_config(params=params)
        params.put_bool(PARAM_IS_RHD, False)
        assert model.is_rhd is True

    def test_context_manager_closes_engine(self):
        engine = FakeEngine()
        with _small_model(engine):
            pass
        assert engine.closed
