"""Voltage-controlled ladder filter with lowpass and highpass outputs."""

from __future__ import annotations

import math
import random
from typing import Any, Callable, Sequence

import numpy as np

from .engine import FREQ_C4, Module, Port, ProcessArgs, clamp, crossfade

LANES = 4
_NUM_FILTERS = 4


def clip(x):
    """Soft saturation: a Pade approximant of tanh, flat beyond +-3."""
    if isinstance(x, np.ndarray):
        x = np.clip(x, -3.0, 3.0)
    else:
        x = max(min(float(x), 3.0), -3.0)
    return x * (27.0 + x * x) / (27.0 + 9.0 * x * x)


def step_rk4(t, dt, state, derivative: Callable[[float, np.ndarray], np.ndarray]) -> np.ndarray:
    """Advance `state` by one classic fourth-order Runge-Kutta step and return the new state."""
    x = np.asarray(state, dtype=float)
    k1 = derivative(t, x)
    k2 = derivative(t + dt / 2.0, x + k1 * (dt / 2.0))
    k3 = derivative(t + dt / 2.0, x + k2 * (dt / 2.0))
    k4 = derivative(t + dt, x + k3 * dt)
    return x + dt * (k1 + 2.0 * k2 + 2.0 * k3 + k4) / 6.0


class LadderFilter:
    """Four-pole nonlinear ladder filter running `width` lanes in parallel."""

    def __init__(self, width: int = LANES) -> None:
        self.width = width
        self.resonance: Any = np.ones(width)
        self.input = np.zeros(width)
        self.state = np.zeros((4, width))
        self.omega0 = np.zeros(width)
        self.reset()
        self.set_cutoff(0.0)

    def _lanes(self, value) -> np.ndarray:
        return np.broadcast_to(np.asarray(value, dtype=float), (self.width,)).copy()

    def reset(self) -> None:
        self.state = np.zeros((4, self.width))

    def set_cutoff(self, cutoff) -> None:
        self.omega0 = 2.0 * math.pi * self._lanes(cutoff)

    def process(self, value, dt: float) -> None:
        value = self._lanes(value)
        previous = self.input
        omega0 = self.omega0
        resonance = self.resonance

        def derivative(t: float, x: np.ndarray) -> np.ndarray:
            input_t = crossfade(previous, value, t / dt)
            input_c = clip(input_t - resonance * x[3])
            y = clip(x)
            return omega0 * np.stack((input_c - y[0], y[0] - y[1], y[1] - y[2], y[2] - y[3]))

        self.state = step_rk4(0.0, dt, self.state, derivative)
        self.input = value

    def lowpass(self) -> np.ndarray:
        return self.state[3].copy()

    def highpass(self) -> np.ndarray:
        s = self.state
        return clip((self.input - self.resonance * s[3]) - 4.0 * s[0] + 6.0 * s[1] - 4.0 * s[2] + s[3])


def _block(port: Port, c: int) -> np.ndarray:
    return np.asarray(port.voltages[c : c + LANES], dtype=float)


def _poly_block(port: Port, c: int) -> np.ndarray:
    if port.is_monophonic:
        return np.full(LANES, port.voltages[0], dtype=float)
    return _block(port, c)


class VCF(Module):
    FREQ_PARAM = 0
    FINE_PARAM = 1
    RES_PARAM = 2
    FREQ_CV_PARAM = 3
    DRIVE_PARAM = 4
    RES_CV_PARAM = 5
    DRIVE_CV_PARAM = 6
    NUM_PARAMS = 7

    FREQ_INPUT = 0
    RES_INPUT = 1
    DRIVE_INPUT = 2
    IN_INPUT = 3
    NUM_INPUTS = 4

    LPF_OUTPUT = 0
    HPF_OUTPUT = 1
    NUM_OUTPUTS = 2

    BYPASS_ROUTES = ((IN_INPUT, LPF_OUTPUT), (IN_INPUT, HPF_OUTPUT))

    def __init__(self, rng: random.Random | None = None) -> None:
        super().__init__()
        self._config(self.NUM_PARAMS, self.NUM_INPUTS, self.NUM_OUTPUTS)
        # The frequency knob keeps the old mapping: freq = C4 * 2^(10 * param - 5).
        min_freq = (math.log2(FREQ_C4 / 8000.0) + 5.0) / 10.0
        max_freq = (math.log2(8000.0 / FREQ_C4) + 5.0) / 10.0
        default_freq = 0.5
        self._config_param(
            self.FREQ_PARAM, min_freq, max_freq, default_freq, "Cutoff frequency", " Hz",
            2.0**10, FREQ_C4 / 2.0**5,
        )
        self._config_param(self.RES_PARAM, 0.0, 1.0, 0.0, "Resonance", "%", 0.0, 100.0)
        self._config_param(self.RES_CV_PARAM, -1.0, 1.0, 0.0, "Resonance CV", "%", 0.0, 100.0)
        self._config_param(self.FREQ_CV_PARAM, -1.0, 1.0, 0.0, "Cutoff frequency CV", "%", 0.0, 100.0)
        # gain(drive) = (1 + drive)^5
        self._config_param(self.DRIVE_PARAM, -1.0, 1.0, 0.0, "Drive", "%", 0.0, 100.0, 100.0)
        self._config_param(self.DRIVE_CV_PARAM, -1.0, 1.0, 0.0, "Drive CV", "%", 0.0, 100.0)

        self._config_input(self.FREQ_INPUT, "Frequency")
        self._config_input(self.RES_INPUT, "Resonance")
        self._config_input(self.DRIVE_INPUT, "Drive")
        self._config_input(self.IN_INPUT, "Audio")

        self._config_output(self.LPF_OUTPUT, "Lowpass filter")
        self._config_output(self.HPF_OUTPUT, "Highpass filter")

        self.filters = [LadderFilter(LANES) for _ in range(_NUM_FILTERS)]
        self._rng = rng or random.Random()

    def on_reset(self) -> None:
        for ladder in self.filters:
            ladder.reset()

    def process(self, args: ProcessArgs) -> None:
        lpf = self.outputs[self.LPF_OUTPUT]
        hpf = self.outputs[self.HPF_OUTPUT]
        if not lpf.is_connected and not hpf.is_connected:
            return

        drive_param = self.params[self.DRIVE_PARAM].value
        drive_cv_param = self.params[self.DRIVE_CV_PARAM].value
        res_param = self.params[self.RES_PARAM].value
        res_cv_param = self.params[self.RES_CV_PARAM].value
        freq_param = self.params[self.FREQ_PARAM].value * 10.0 - 5.0
        freq_cv_param = self.params[self.FREQ_CV_PARAM].value

        source = self.inputs[self.IN_INPUT]
        channels = max(1, source.channels)

        for c in range(0, channels, LANES):
            ladder = self.filters[c // LANES]

            signal = _block(source, c) / 5.0

            drive = drive_param + _poly_block(self.inputs[self.DRIVE_INPUT], c) / 10.0 * drive_cv_param
            drive = clamp(drive, -1.0, 1.0)
            signal = signal * np.power(1.0 + drive, 5)

            # -120 dB of noise lets the filter start self-oscillating.
            signal = signal + 1e-6 * (2.0 * self._rng.random() - 1.0)

            resonance = res_param + _poly_block(self.inputs[self.RES_INPUT], c) / 10.0 * res_cv_param
            resonance = clamp(resonance, 0.0, 1.0)
            ladder.resonance = np.power(resonance, 2) * 10.0

            pitch = freq_param + _poly_block(self.inputs[self.FREQ_INPUT], c) * freq_cv_param
            cutoff = FREQ_C4 * np.power(2.0, pitch)
            # Without oversampling the cutoff must stay well below Nyquist.
            cutoff = clamp(cutoff, 1.0, args.sample_rate * 0.18)
            ladder.set_cutoff(cutoff)

            ladder.process(signal, args.sample_time)
            if lpf.is_connected:
                lpf.voltages[c : c + LANES] = [float(v) for v in 5.0 * ladder.lowpass()]
            if hpf.is_connected:
                hpf.voltages[c : c + LANES] = [float(v) for v in 5.0 * ladder.highpass()]

        lpf.set_channels(channels)
        hpf.set_channels(channels)

    def params_from_json(self, data: Sequence[dict[str, Any]]) -> None:
        # Older patches have no CV attenuators, so they default to fully open.
        self.params[self.RES_CV_PARAM].value = 1.0
        self.params[self.DRIVE_CV_PARAM].value = 1.0
        super().params_from_json(data)