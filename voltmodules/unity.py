"""Unity mixer: two six-input unity-gain mixers with inverted outputs and VU lights."""

from __future__ import annotations

import math
from enum import Enum
from typing import Any

from .engine import ClockDivider, Module, ProcessArgs, rescale

NUM_GROUPS = 2
INPUTS_PER_GROUP = 6
LIGHTS_PER_GROUP = 5


def _round_half_away(x: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.copysign(math.floor(abs(x) + 0.5), x))


def _amplitude_to_db(amplitude: float) -> float:
    if amplitude <= 0.0:
        return -math.inf
    return 20.0 * math.log10(amplitude)


class VuMode(Enum):
    PEAK = "peak"
    RMS = "rms"


class VuMeter:
    """Level meter that rises instantly and falls exponentially."""

    def __init__(self, mode: VuMode = VuMode.PEAK, falloff: float = 30.0) -> None:
        self.mode = mode
        self.falloff = falloff
        self.value = 0.0

    def reset(self) -> None:
        self.value = 0.0

    def process(self, delta_time: float, value: float) -> None:
        if self.mode is VuMode.RMS:
            value = value * value
            self.value += (value - self.value) * self.falloff * delta_time
            return
        value = abs(value)
        if value >= self.value:
            self.value = value
        else:
            self.value += (value - self.value) * self.falloff * delta_time

    def get_brightness(self, db_min: float, db_max: float) -> float:
        """Brightness in [0, 1] of a light covering the range [db_min, db_max]."""
        level = math.sqrt(self.value) if self.mode is VuMode.RMS else self.value
        db = _amplitude_to_db(level)
        if db >= db_max:
            return 1.0
        if db <= db_min:
            return 0.0
        return rescale(db, db_min, db_max, 0.0, 1.0)


class Unity(Module):
    AVG1_PARAM = 0
    AVG2_PARAM = 1
    IN_INPUTS = 0
    MIX1_OUTPUT = 0
    INV1_OUTPUT = 1
    MIX2_OUTPUT = 2
    INV2_OUTPUT = 3
    VU_LIGHTS = 0

    def __init__(self) -> None:
        super().__init__()
        self._config(2, NUM_GROUPS * INPUTS_PER_GROUP, 4, NUM_GROUPS * LIGHTS_PER_GROUP)
        self._config_switch(self.AVG1_PARAM, 0.0, 1.0, 0.0, "Channel 1 mode", ("Sum", "Average"))
        self._config_switch(self.AVG2_PARAM, 0.0, 1.0, 0.0, "Channel 2 mode", ("Sum", "Average"))
        for i in range(NUM_GROUPS):
            for j in range(INPUTS_PER_GROUP):
                self._config_input(self.IN_INPUTS + i * INPUTS_PER_GROUP + j, f"Channel {i + 1} #{j + 1}")
        self._config_output(self.MIX1_OUTPUT, "Channel 1 mix")
        self._config_output(self.INV1_OUTPUT, "Channel 1 inverse mix")
        self._config_output(self.MIX2_OUTPUT, "Channel 2 mix")
        self._config_output(self.INV2_OUTPUT, "Channel 2 inverse mix")

        self.merge = False
        self.vu_meters = [VuMeter() for _ in range(NUM_GROUPS)]
        self.light_divider = ClockDivider(division=256)

    def _group_inputs(self, group: int):
        start = self.IN_INPUTS + INPUTS_PER_GROUP * group
        return self.inputs[start : start + INPUTS_PER_GROUP]

    def process(self, args: ProcessArgs) -> None:
        mix = [sum(port.get_voltage() for port in self._group_inputs(i)) for i in range(NUM_GROUPS)]
        count = [sum(1 for port in self._group_inputs(i) if port.is_connected) for i in range(NUM_GROUPS)]

        if self.merge:
            mix = [mix[0] + mix[1]] * NUM_GROUPS
            count = [count[0] + count[1]] * NUM_GROUPS

        for i, meter in enumerate(self.vu_meters):
            if count[i] > 0 and _round_half_away(self.params[self.AVG1_PARAM + i].value) == 1:
                mix[i] /= count[i]
            self.outputs[self.MIX1_OUTPUT + 2 * i].set_voltage(mix[i])
            self.outputs[self.INV1_OUTPUT + 2 * i].set_voltage(-mix[i])
            meter.process(args.sample_time, mix[i] / 10.0)

        if self.light_divider.process():
            for i, meter in enumerate(self.vu_meters):
                base = self.VU_LIGHTS + LIGHTS_PER_GROUP * i
                self.lights[base].brightness = meter.get_brightness(0.0, 0.0)
                for j in range(1, LIGHTS_PER_GROUP):
                    self.lights[base + j].brightness = meter.get_brightness(-6.0 * (j + 1), -6.0 * j)

    def on_reset(self) -> None:
        self.merge = False

    def data_to_json(self) -> dict[str, Any]:
        return {"merge": self.merge}

    def data_from_json(self, data: dict[str, Any]) -> None:
        if "merge" in data:
            self.merge = bool(data["merge"])