import math

import numpy as np
import pytest

from voltmodules.engine import ProcessArgs
from voltmodules.vcf import VCF, LadderFilter, clip, step_rk4

ARGS = ProcessArgs(sample_rate=44100.0)


def _connect(port, *voltages):
    port.channels = len(voltages)
    for c, v in enumerate(voltages):
        port.voltages[c] = v


def _run(module, samples):
    for _ in range(samples):
        module.process(ARGS)


def test_clip_is_zero_at_zero():
    assert clip(0.0) == 0.0


def test_clip_saturates_at_three():
    assert clip(3.0) == pytest.approx(1.0)
    assert clip(10.0) == clip(3.0)


@pytest.mark.parametrize("x", [0.1, 0.7, 1.5, 2.9])
def test_clip_is_odd_and_bounded(x):
    assert clip(-x) == pytest.approx(-clip(x))
    assert 0.0 < clip(x) <= 1.0


def test_clip_works_on_arrays():
    values = np.array([-5.0, -0.5, 0.0, 0.5, 5.0])
    result = clip(values)
    assert result.shape == values.shape
    assert result[2] == 0.0
    assert result[0] == pytest.approx(-result[4])
    assert result[1] == pytest.approx(clip(-0.5))


def test_step_rk4_tracks_exponential_growth():
    dt = 0.1
    state = step_rk4(0.0, dt, np.array([1.0]), lambda t, x: x)
    assert state[0] == pytest.approx(math.exp(dt), abs=dt**5)


def test_step_rk4_integrates_time_dependent_derivative():
    # dx/dt = 2t integrated over [0, 1] is exactly captured by RK4.
    state = step_rk4(0.0, 1.0, np.array([0.0]), lambda t, x: np.full_like(x, 2.0 * t))
    assert state[0] == pytest.approx(1.0)


def test_ladder_filter_starts_silent():
    ladder = LadderFilter(width=1)
    ladder.process(0.5, 1.0 / 44100.0)
    # Zero cutoff leaves the state untouched.
    assert ladder.lowpass()[0] == 0.0


def test_ladder_lowpass_settles_to_dc_input():
    ladder = LadderFilter(width=1)
    ladder.resonance = 0.0
    ladder.set_cutoff(1000.0)
    for _ in range(2000):
        ladder.process(0.1, 1.0 / 44100.0)
    assert ladder.lowpass()[0] == pytest.approx(0.1, abs=1e-4)
    assert ladder.highpass()[0] == pytest.approx(0.0, abs=1e-4)


def test_ladder_reset_clears_state():
    ladder = LadderFilter(width=2)
    ladder.set_cutoff(500.0)
    for _ in range(100):
        ladder.process([0.3, -0.3], 1.0 / 44100.0)
    low = ladder.lowpass()
    assert low[0] > 0.0
    assert low[1] < 0.0
    ladder.reset()
    assert [float(v) for v in ladder.lowpass()] == [0.0, 0.0]
    assert float(np.abs(ladder.state).max()) == 0.0


def test_ladder_lanes_are_independent():
    ladder = LadderFilter(width=2)
    ladder.resonance = 0.0
    ladder.set_cutoff(800.0)
    for _ in range(200):
        ladder.process([0.2, -0.2], 1.0 / 44100.0)
    low = ladder.lowpass()
    assert low[0] == pytest.approx(-low[1])


def test_vcf_does_nothing_without_outputs():
    vcf = VCF()
    _connect(vcf.inputs[VCF.IN_INPUT], 2.0)
    vcf.process(ARGS)
    assert vcf.outputs[VCF.LPF_OUTPUT].channels == 0
    assert np.all(vcf.filters[0].state == 0.0)


def test_vcf_lowpass_passes_dc():
    vcf = VCF()
    _connect(vcf.inputs[VCF.IN_INPUT], 1.0)
    _connect(vcf.outputs[VCF.LPF_OUTPUT], 0.0)
    _connect(vcf.outputs[VCF.HPF_OUTPUT], 0.0)
    _run(vcf, 4410)
    assert vcf.outputs[VCF.LPF_OUTPUT].get_voltage(0) == pytest.approx(1.0, abs=1e-3)
    assert vcf.outputs[VCF.HPF_OUTPUT].get_voltage(0) == pytest.approx(0.0, abs=1e-3)


def test_vcf_output_channels_follow_input():
    vcf = VCF()
    _connect(vcf.inputs[VCF.IN_INPUT], 1.0, 2.0, 3.0, 4.0, 5.0)
    _connect(vcf.outputs[VCF.LPF_OUTPUT], 0.0)
    vcf.process(ARGS)
    assert vcf.outputs[VCF.LPF_OUTPUT].channels == 5
    assert vcf.outputs[VCF.HPF_OUTPUT].channels == 0
    assert np.any(vcf.filters[1].state != 0.0)
    assert np.all(vcf.filters[2].state == 0.0)


def test_vcf_resonance_param_sets_filter_resonance():
    vcf = VCF()
    vcf.params[VCF.RES_PARAM].value = 0.5
    _connect(vcf.inputs[VCF.IN_INPUT], 0.0)
    _connect(vcf.outputs[VCF.LPF_OUTPUT], 0.0)
    vcf.process(ARGS)
    assert vcf.filters[0].resonance[0] == pytest.approx(0.5**2 * 10.0)


def test_vcf_cutoff_is_limited_by_sample_rate():
    vcf = VCF()
    vcf.params[VCF.FREQ_PARAM].value = vcf.params[VCF.FREQ_PARAM].maximum
    vcf.params[VCF.FREQ_CV_PARAM].value = 1.0
    _connect(vcf.inputs[VCF.FREQ_INPUT], 10.0)
    _connect(vcf.inputs[VCF.IN_INPUT], 0.0)
    _connect(vcf.outputs[VCF.LPF_OUTPUT], 0.0)
    vcf.process(ARGS)
    assert vcf.filters[0].omega0[0] == pytest.approx(2.0 * math.pi * ARGS.sample_rate * 0.18)


def test_vcf_on_reset_clears_filters():
    vcf = VCF()
    _connect(vcf.inputs[VCF.IN_INPUT], 3.0)
    _connect(vcf.outputs[VCF.LPF_OUTPUT], 0.0)
    _run(vcf, 10)
    assert vcf.outputs[VCF.LPF_OUTPUT].get_voltage(0) > 0.0
    vcf.on_reset()
    assert [float(np.abs(f.state).max()) for f in vcf.filters] == [0.0] * len(vcf.filters)


def test_params_from_json_defaults_cv_attenuators_to_one():
    vcf = VCF()
    vcf.params_from_json([])
    assert vcf.params[VCF.RES_CV_PARAM].value == 1.0
    assert vcf.params[VCF.DRIVE_CV_PARAM].value == 1.0


def test_params_from_json_keeps_saved_values():
    vcf = VCF()
    vcf.params_from_json([{"id": VCF.RES_CV_PARAM, "value": -0.25}])
    assert vcf.params[VCF.RES_CV_PARAM].value == -0.25
    assert vcf.params[VCF.DRIVE_CV_PARAM].value == 1.0