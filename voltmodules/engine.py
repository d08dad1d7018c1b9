"""Core engine pieces: ports, parameters, lights, triggers and DSP helpers."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, NamedTuple, Sequence

import numpy as np

MAX_CHANNELS = 16
FREQ_C4 = 261.6256
FREQ_SEMITONE = 2.0 ** (1.0 / 12.0)


def _zeros() -> list[float]:
    return [0.0] * MAX_CHANNELS


@dataclass
class Port:
    """A polyphonic jack holding up to 16 voltages.

    A port with zero channels is disconnected.
    """

    channels: int = 0
    voltages: list[float] = field(default_factory=_zeros)
    name: str = ""

    @property
    def is_connected(self) -> bool:
        return self.channels > 0

    @property
    def is_monophonic(self) -> bool:
        return self.channels == 1

    @property
    def is_polyphonic(self) -> bool:
        return self.channels > 1

    def get_voltage(self, channel: int = 0) -> float:
        return self.voltages[channel]

    def set_voltage(self, voltage: float, channel: int = 0) -> None:
        self.voltages[channel] = float(voltage)

    def get_poly_voltage(self, channel: int) -> float:
        """Voltage of a channel, with a monophonic signal copied to every channel."""
        return self.voltages[0] if self.is_monophonic else self.voltages[channel]

    def get_voltage_sum(self) -> float:
        return math.fsum(self.voltages[: self.channels])

    def set_channels(self, channels: int) -> None:
        """Set the channel count; a disconnected port stays disconnected."""
        if self.channels == 0:
            return
        for c in range(channels, self.channels):
            self.voltages[c] = 0.0
        self.channels = max(channels, 1)

    def read_voltages(self) -> list[float]:
        return list(self.voltages[: self.channels])

    def write_voltages(self, voltages: Sequence[float]) -> None:
        """Copy the first `channels` values of `voltages` into the port."""
        for c, v in zip(range(self.channels), voltages):
            self.voltages[c] = float(v)


@dataclass
class Param:
    """A knob or switch with its range and display settings."""

    minimum: float = 0.0
    maximum: float = 1.0
    default: float = 0.0
    name: str = ""
    unit: str = ""
    display_base: float = 0.0
    display_multiplier: float = 1.0
    display_offset: float = 0.0
    labels: tuple[str, ...] = ()
    randomize_enabled: bool = True
    value: float = 0.0

    def reset(self) -> None:
        self.value = self.default


@dataclass
class Light:
    brightness: float = 0.0
    name: str = ""

    def set_smooth_brightness(self, brightness: float, delta_time: float) -> None:
        """Rise instantly, fall exponentially towards `brightness`."""
        lam = 30.0
        if brightness < self.brightness:
            self.brightness += (brightness - self.brightness) * lam * delta_time
        else:
            self.brightness = brightness


@dataclass
class ClockDivider:
    division: int = 1
    clock: int = 0

    def process(self) -> bool:
        """Count one tick; return True once every `division` ticks."""
        self.clock += 1
        if self.clock >= self.division:
            self.clock = 0
            return True
        return False


@dataclass
class SchmittTrigger:
    state: bool = True

    def process(self, value: float, low: float = 0.0, high: float = 1.0) -> bool:
        """Return True when the signal rises through `high` after falling to `low`."""
        if self.state:
            if value <= low:
                self.state = False
        elif value >= high:
            self.state = True
            return True
        return False


@dataclass
class BooleanTrigger:
    state: bool = True

    def process(self, state: bool) -> bool:
        """Return True on a False-to-True transition."""
        triggered = state and not self.state
        self.state = bool(state)
        return triggered


@dataclass
class Timer:
    time: float = 0.0

    def process(self, delta_time: float) -> float:
        self.time += delta_time
        return self.time

    def reset(self) -> None:
        self.time = 0.0


@dataclass(frozen=True)
class ProcessArgs:
    sample_rate: float = 44100.0
    frame: int = 0

    @property
    def sample_time(self) -> float:
        return 1.0 / self.sample_rate


class Module(ABC):
    """Base class for a module with params, inputs, outputs and lights."""

    def __init__(self) -> None:
        self.params: list[Param] = []
        self.inputs: list[Port] = []
        self.outputs: list[Port] = []
        self.lights: list[Light] = []

    def _config(self, num_params: int, num_inputs: int, num_outputs: int, num_lights: int = 0) -> None:
        self.params = [Param() for _ in range(num_params)]
        self.inputs = [Port() for _ in range(num_inputs)]
        self.outputs = [Port() for _ in range(num_outputs)]
        self.lights = [Light() for _ in range(num_lights)]

    def _config_param(
        self,
        index: int,
        minimum: float,
        maximum: float,
        default: float,
        name: str = "",
        unit: str = "",
        display_base: float = 0.0,
        display_multiplier: float = 1.0,
        display_offset: float = 0.0,
    ) -> Param:
        param = Param(
            minimum=minimum,
            maximum=maximum,
            default=default,
            name=name,
            unit=unit,
            display_base=display_base,
            display_multiplier=display_multiplier,
            display_offset=display_offset,
            value=default,
        )
        self.params[index] = param
        return param

    def _config_switch(
        self,
        index: int,
        minimum: float,
        maximum: float,
        default: float,
        name: str = "",
        labels: Sequence[str] = (),
    ) -> Param:
        param = Param(
            minimum=minimum, maximum=maximum, default=default, name=name, labels=tuple(labels), value=default
        )
        self.params[index] = param
        return param

    def _config_input(self, index: int, name: str) -> None:
        self.inputs[index].name = name

    def _config_output(self, index: int, name: str) -> None:
        self.outputs[index].name = name

    def _config_light(self, index: int, name: str) -> None:
        self.lights[index].name = name

    @abstractmethod
    def process(self, args: ProcessArgs) -> None:
        """Advance the module by one sample."""

    def on_reset(self) -> None:
        """Hook run when the module is initialized; stateless modules keep nothing to clear."""

    def on_sample_rate_change(self) -> None:
        """Hook run when the engine sample rate changes."""

    def params_to_json(self) -> list[dict[str, Any]]:
        return [{"value": p.value, "id": i} for i, p in enumerate(self.params)]

    def params_from_json(self, data: Sequence[dict[str, Any]]) -> None:
        for position, entry in enumerate(data):
            index = entry.get("id", position)
            if not 0 <= index < len(self.params):
                continue
            if "value" in entry:
                self.params[index].value = float(entry["value"])

    def data_to_json(self) -> dict[str, Any] | None:
        return None

    def data_from_json(self, data: dict[str, Any]) -> None:
        """Hook restoring extra state; modules without extra state ignore it."""


def clamp(x, low, high):
    """Limit `x` to [low, high]; works on scalars and numpy arrays."""
    if isinstance(x, np.ndarray):
        return np.maximum(np.minimum(x, high), low)
    return max(min(x, high), low)


def crossfade(a, b, p):
    return a + (b - a) * p


def rescale(x, x_min, x_max, y_min, y_max):
    return y_min + (x - x_min) / (x_max - x_min) * (y_max - y_min)


_LN2 = math.log(2.0)
_EXP2_COEFFS = tuple(math.sqrt(2.0) * _LN2**k / math.factorial(k) for k in range(6))


def _exp2_fraction(f):
    d = f - 0.5
    result = _EXP2_COEFFS[-1]
    for coeff in reversed(_EXP2_COEFFS[:-1]):
        result = result * d + coeff
    return result


def approx_exp2(x):
    """2**x from a fifth-order Taylor series of the fractional part."""
    if np.ndim(x) == 0:
        whole = math.floor(x)
        return math.ldexp(_exp2_fraction(x - whole), int(whole))
    arr = np.asarray(x, dtype=float)
    whole = np.floor(arr)
    return np.ldexp(_exp2_fraction(arr - whole), whole.astype(int))


class VoltageRange(NamedTuple):
    gain: float
    offset: float


RANGES: tuple[VoltageRange, ...] = (
    VoltageRange(10.0, 0.0),
    VoltageRange(5.0, 0.0),
    VoltageRange(1.0, 0.0),
    VoltageRange(20.0, -10.0),
    VoltageRange(10.0, -5.0),
    VoltageRange(2.0, -1.0),
)


def range_labels() -> list[str]:
    return ["%gV to %gV" % (r.offset, r.offset + r.gain) for r in RANGES]


def find_range(gain: float, offset: float) -> int | None:
    """Index of the preset range with this gain and offset, or None."""
    try:
        return RANGES.index(VoltageRange(gain, offset))
    except ValueError:
        return None