"""Sum all channels of a polyphonic signal into one, with a peak meter."""

from __future__ import annotations

from typing import Iterable

from .engine import Module, ProcessArgs

BUFFER_SIZE = 128
METER_LIMIT = 10.0


def find_max_normalized(values: Iterable[float]) -> float:
    """Largest absolute value, capped at 10 V; zero for an empty or silent block."""
    peak = max((abs(v) for v in values), default=0.0)
    return min(peak, METER_LIMIT)


class Sum(Module):
    LEVEL_PARAM = 0
    POLY_INPUT = 0
    MONO_OUTPUT = 0
    VU_LIGHTS = 0
    NUM_VU_LIGHTS = 6

    def __init__(self) -> None:
        super().__init__()
        self._config(1, 1, 1, self.NUM_VU_LIGHTS)
        self._config_param(self.LEVEL_PARAM, 0.0, 1.0, 1.0, "Level", "%", 0.0, 100.0)
        self._config_input(self.POLY_INPUT, "Polyphonic")
        self._config_output(self.MONO_OUTPUT, "Monophonic")
        self.last_channels = 0
        self.level_meter = 0.0
        self.reset_meters = True
        self._buffer: list[float] = []

    def process(self, args: ProcessArgs) -> None:
        total = self.inputs[self.POLY_INPUT].get_voltage_sum()
        total *= self.params[self.LEVEL_PARAM].value
        self.outputs[self.MONO_OUTPUT].set_voltage(total)
        self.last_channels = self.inputs[self.POLY_INPUT].channels

        self._buffer.append(total)
        if len(self._buffer) == BUFFER_SIZE:
            if self.reset_meters:
                self.level_meter = 0.0
            self.level_meter = max(self.level_meter, find_max_normalized(self._buffer))
            self._buffer.clear()
            self.reset_meters = False

    def on_reset(self) -> None:
        self.reset_meters = True

    def on_sample_rate_change(self) -> None:
        self.reset_meters = True

    def read_meter(self) -> float | None:
        """Take the meter level if a new block was measured since the last read."""
        if self.reset_meters:
            return None
        self.reset_meters = True
        return self.level_meter

    def channel_text(self) -> str:
        return f"{self.last_channels:02d}"