"""Show the voltage of each channel of a polyphonic signal on lights."""

from __future__ import annotations

from .engine import MAX_CHANNELS, ClockDivider, Module, ProcessArgs


class Viz(Module):
    POLY_INPUT = 0
    VU_LIGHTS = 0

    def __init__(self) -> None:
        super().__init__()
        self._config(0, 1, 0, MAX_CHANNELS * 2)
        self._config_input(self.POLY_INPUT, "Polyphonic")
        self.last_channel = 0
        self.light_divider = ClockDivider(division=16)

    def process(self, args: ProcessArgs) -> None:
        if not self.light_divider.process():
            return
        source = self.inputs[self.POLY_INPUT]
        self.last_channel = source.channels
        delta_time = args.sample_time * self.light_divider.division
        for c in range(MAX_CHANNELS):
            v = source.get_voltage(c) / 10.0
            self.lights[self.VU_LIGHTS + c * 2].set_smooth_brightness(v, delta_time)
            self.lights[self.VU_LIGHTS + c * 2 + 1].set_smooth_brightness(-v, delta_time)