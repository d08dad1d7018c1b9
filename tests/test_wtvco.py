import math

import numpy as np
import pytest

from voltmodules.engine import ProcessArgs
from voltmodules.wtvco import WTVCO

ARGS = ProcessArgs(sample_rate=44100.0)


@pytest.fixture(scope="module")
def template():
    return WTVCO()


def _connected():
    module = WTVCO()
    module.outputs[WTVCO.WAVE_OUTPUT].channels = 1
    return module


def test_wavetable_is_upsampled(template):
    assert template.wavetable.quality == 8
    assert template.wavetable.octaves == 9


def test_get_wave_sine_peak(template):
    size = template.wavetable.wave_len * template.wavetable.quality
    assert template.get_wave(size / 4, 0.0, 8.0) == pytest.approx(1.0, abs=1e-3)
    assert template.get_wave(0.0, 0.0, 8.0) == pytest.approx(0.0, abs=1e-3)


def test_get_wave_clamps_octave(template):
    size = template.wavetable.wave_len * template.wavetable.quality
    high = template.get_wave(size / 4, 0.0, 100.0)
    top = template.get_wave(size / 4, 0.0, template.wavetable.octaves - 1)
    assert high == top
    assert template.get_wave(size / 4, 0.0, math.inf) == top


def test_sine_output_follows_phase():
    module = _connected()
    for _ in range(40):
        module.process(ARGS)
        phase = float(module.phases[0][0])
        expected = 5.0 * math.sin(2.0 * math.pi * phase)
        assert module.outputs[0].get_voltage(0) == pytest.approx(expected, abs=0.02)


def test_channels_follow_pitch_and_fm():
    module = _connected()
    module.inputs[WTVCO.PITCH_INPUT].channels = 2
    module.inputs[WTVCO.FM_INPUT].channels = 5
    module.process(ARGS)
    assert module.outputs[WTVCO.WAVE_OUTPUT].channels == 5


def test_hard_sync_restarts_phase():
    module = _connected()
    sync = module.inputs[WTVCO.SYNC_INPUT]
    sync.channels = 1
    sync.set_voltage(-1.0)
    module.process(ARGS)
    first = float(module.phases[0][0])
    sync.set_voltage(1.0)
    module.process(ARGS)
    assert float(module.phases[0][0]) == pytest.approx(0.5 * first)


def test_soft_sync_reverses_direction():
    module = _connected()
    module.params[WTVCO.SOFT_PARAM].value = 1.0
    sync = module.inputs[WTVCO.SYNC_INPUT]
    sync.channels = 1
    sync.set_voltage(-1.0)
    module.process(ARGS)
    sync.set_voltage(1.0)
    module.process(ARGS)
    assert module.sync_directions[0][0] == -1.0


def test_on_reset_restores_directions():
    module = _connected()
    module.sync_directions[0][:] = -1.0
    assert float(module.sync_directions[0][0]) == -1.0
    module.on_reset()
    directions = [[float(v) for v in d] for d in module.sync_directions]
    assert directions == [[1.0] * 4] * 4


def test_clear_output():
    module = _connected()
    out = module.outputs[WTVCO.WAVE_OUTPUT]
    out.channels = 4
    out.set_voltage(3.0)
    module.clear_output()
    assert out.channels == 1
    assert out.get_voltage(0) == 0.0


def test_invalid_wavetable_outputs_silence():
    module = _connected()
    module.wavetable.wave_len = 1
    module.process(ARGS)
    assert module.outputs[WTVCO.WAVE_OUTPUT].get_voltage(0) == 0.0


def test_lights_follow_switches():
    module = _connected()
    module.params[WTVCO.SOFT_PARAM].value = 1.0
    for _ in range(16):
        module.process(ARGS)
    assert module.lights[WTVCO.SOFT_LIGHT].brightness == 1.0
    assert module.lights[WTVCO.LINEAR_LIGHT].brightness == 0.0


def test_params_from_json_opens_position_cv_when_missing():
    module = WTVCO()
    module.params_from_json([])
    assert module.params[WTVCO.POS_CV_PARAM].value == 1.0


def test_data_json_round_trip(template):
    assert template.data_to_json() == {"waveLen": 1024, "filename": "Basic.wav"}
    module = WTVCO()
    module.data_from_json({"filename": "Other.wav"})
    assert module.wavetable.filename == "Other.wav"
    assert module.wavetable.wave_len == 1024


def test_save_and_add_round_trip(tmp_path, template):
    template.on_save(tmp_path / "store")
    module = WTVCO()
    module.wavetable.samples = np.zeros(8, dtype=np.float32)
    module.on_add(tmp_path / "store")
    np.testing.assert_allclose(module.wavetable.samples, template.wavetable.samples, atol=1e-4)