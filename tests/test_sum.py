import pytest

from voltmodules.engine import ProcessArgs
from voltmodules.sum import BUFFER_SIZE, METER_LIMIT, Sum, find_max_normalized


def _sum_with(voltages, level=1.0):
    module = Sum()
    source = module.inputs[Sum.POLY_INPUT]
    source.channels = len(voltages)
    source.write_voltages(voltages)
    module.params[Sum.LEVEL_PARAM].value = level
    return module


def _run(module, frames):
    args = ProcessArgs()
    for _ in range(frames):
        module.process(args)


def test_sums_channels():
    module = _sum_with([1.0, 2.0, 3.0])
    _run(module, 1)
    assert module.outputs[Sum.MONO_OUTPUT].get_voltage() == pytest.approx(6.0)
    assert module.last_channels == 3


def test_level_zero_silences():
    module = _sum_with([1.0, 2.0], level=0.0)
    _run(module, 1)
    assert module.outputs[Sum.MONO_OUTPUT].get_voltage() == 0.0


def test_default_level_is_unity():
    module = Sum()
    assert module.params[Sum.LEVEL_PARAM].value == 1.0


def test_meter_needs_full_block():
    module = _sum_with([2.0])
    _run(module, BUFFER_SIZE - 1)
    assert module.read_meter() is None
    _run(module, 1)
    assert module.read_meter() == pytest.approx(module.outputs[0].get_voltage())
    assert module.read_meter() is None


def test_meter_capped():
    module = _sum_with([20.0])
    _run(module, BUFFER_SIZE)
    assert module.read_meter() == METER_LIMIT


def test_meter_holds_peak_until_reset():
    module = _sum_with([8.0])
    _run(module, BUFFER_SIZE)
    module.inputs[0].set_voltage(1.0)
    _run(module, BUFFER_SIZE)
    assert module.read_meter() == pytest.approx(8.0)
    module.on_reset()
    _run(module, BUFFER_SIZE)
    assert module.read_meter() == pytest.approx(1.0)


def test_sample_rate_change_marks_meter_stale():
    module = _sum_with([3.0])
    _run(module, BUFFER_SIZE)
    module.on_sample_rate_change()
    assert module.read_meter() is None


def test_channel_text():
    module = _sum_with([0.0, 0.0, 0.0])
    _run(module, 1)
    assert module.channel_text() == "03"


def test_find_max_normalized():
    assert find_max_normalized([0.0, -4.0, 2.0]) == 4.0
    assert find_max_normalized([0.0] * 8) == 0.0
    assert find_max_normalized([]) == 0.0
    assert find_max_normalized([50.0]) == METER_LIMIT