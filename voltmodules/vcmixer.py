"""Four-channel voltage-controlled mixer with per-channel and mix CV."""

from __future__ import annotations

import math

from .engine import MAX_CHANNELS, Module, ProcessArgs, clamp

NUM_CHANNELS = 4


def _apply_cv(value: float, cv_voltage: float, cv_level: float) -> float:
    cv = clamp(cv_voltage / 10.0, 0.0, 1.0)
    if cv_level < 1.0:
        return value * (1.0 - cv_level) + value * cv * cv_level
    return value * cv * cv_level


class VCMixer(Module):
    MIX_LVL_PARAM = 0
    LVL_PARAMS = 1
    CV_MIX_LVL_PARAM = 5
    CV_LVL_PARAMS = 6
    NUM_PARAMS = 10

    MIX_CV_INPUT = 0
    CH_INPUTS = 1
    CV_INPUTS = 5
    NUM_INPUTS = 9

    MIX_OUTPUT = 0
    CH_OUTPUTS = 1
    NUM_OUTPUTS = 5

    LVL_LIGHTS = 0
    NUM_LIGHTS = 4

    def __init__(self) -> None:
        super().__init__()
        self._config(self.NUM_PARAMS, self.NUM_INPUTS, self.NUM_OUTPUTS, self.NUM_LIGHTS)
        # Linear scaling up to +6 dB.
        self._config_param(self.MIX_LVL_PARAM, 0.0, 2.0, 1.0, "Mix level", " dB", -10.0, 20.0)
        # Quadratic scaling up to +6 dB.
        for i in range(NUM_CHANNELS):
            self._config_param(
                self.LVL_PARAMS + i, 0.0, math.sqrt(2.0), 1.0, f"Channel {i + 1} level", " dB", -10.0, 40.0
            )
        self._config_input(self.MIX_CV_INPUT, "Mix CV")
        for i in range(NUM_CHANNELS):
            self._config_input(self.CH_INPUTS + i, f"Channel {i + 1}")
        for i in range(NUM_CHANNELS):
            self._config_input(self.CV_INPUTS + i, f"Channel {i + 1} CV")
        self._config_output(self.MIX_OUTPUT, "Mix")
        for i in range(NUM_CHANNELS):
            self._config_output(self.CH_OUTPUTS + i, f"Channel {i + 1}")
        self._config_param(self.CV_MIX_LVL_PARAM, 0.0, 2.0, 1.0, "Mix CV signal", "%", 0.0, 100.0)
        for i in range(NUM_CHANNELS):
            self._config_param(
                self.CV_LVL_PARAMS + i, 0.0, 2.0, 1.0, f"Channel {i + 1} CV signal", "%", 0.0, 100.0
            )

    def _strip(self, i: int) -> tuple[int, list[float]]:
        """Channel count and gained voltages of one channel strip."""
        source = self.inputs[self.CH_INPUTS + i]
        levels = [0.0] * MAX_CHANNELS
        if not source.is_connected:
            return 1, levels

        channels = source.channels
        gain = self.params[self.LVL_PARAMS + i].value ** 2
        strip = [v * gain for v in source.read_voltages()]

        cv_port = self.inputs[self.CV_INPUTS + i]
        if cv_port.is_connected:
            cv_level = self.params[self.CV_LVL_PARAMS + i].value
            strip = [_apply_cv(v, cv_port.get_poly_voltage(c), cv_level) for c, v in enumerate(strip)]

        levels[:channels] = strip
        return channels, levels

    def process(self, args: ProcessArgs) -> None:
        ch_inputs = self.inputs[self.CH_INPUTS : self.CH_INPUTS + NUM_CHANNELS]
        mix_channels = max(1, *(port.channels for port in ch_inputs))
        mix = [0.0] * MAX_CHANNELS

        for i in range(NUM_CHANNELS):
            channels, levels = self._strip(i)
            mix = [m + v for m, v in zip(mix, levels)]

            out = self.outputs[self.CH_OUTPUTS + i]
            if out.is_connected:
                out.set_channels(channels)
                out.write_voltages(levels)

        out = self.outputs[self.MIX_OUTPUT]
        if not out.is_connected:
            return

        gain = self.params[self.MIX_LVL_PARAM].value
        mixed = [v * gain for v in mix[:mix_channels]]

        cv_port = self.inputs[self.MIX_CV_INPUT]
        if cv_port.is_connected:
            cv_level = self.params[self.CV_MIX_LVL_PARAM].value
            mixed = [_apply_cv(v, cv_port.get_poly_voltage(c), cv_level) for c, v in enumerate(mixed)]

        out.set_channels(mix_channels)
        out.write_voltages(mixed)