"""Analog-style voltage-controlled oscillator with band-limited discontinuities."""

from __future__ import annotations

import functools
import math

import numpy as np

from .engine import (
    FREQ_C4,
    FREQ_SEMITONE,
    ClockDivider,
    Module,
    Port,
    ProcessArgs,
    approx_exp2,
    clamp,
    crossfade,
)

LANES = 4
_NUM_OSCILLATORS = 4
_PW_MIN = 0.01
_MAX_DELTA_PHASE = 0.35


def sin2pi_pade(x):
    """sin(2*pi*x) from a [5/4] Pade approximant, accurate only on [0, 1]."""
    x = np.asarray(x, dtype=float) - 0.5
    numerator = -6.283185307 * x + 33.19863968 * x**3 - 32.44191367 * x**5
    denominator = 1.0 + 1.296008659 * x**2 + 0.7028072946 * x**4
    return numerator / denominator


def exp_curve(x):
    """Rational curve falling from 1 at x=0 to -1 at x=1, shaped like a charging capacitor."""
    return (3.0 + x * (-13.0 + 5.0 * x)) / (3.0 + 2.0 * x)


def _blackman_harris(n: int) -> np.ndarray:
    p = np.arange(n) / (n - 1)
    return (
        0.35875
        - 0.48829 * np.cos(2.0 * math.pi * p)
        + 0.14128 * np.cos(4.0 * math.pi * p)
        - 0.01168 * np.cos(6.0 * math.pi * p)
    )


@functools.lru_cache(maxsize=None)
def _min_blep_impulse(zero_crossings: int, oversample: int) -> np.ndarray:
    """Integrated minimum-phase windowed sinc, normalized to end at 1."""
    n = 2 * zero_crossings * oversample
    x = np.sinc(np.linspace(-zero_crossings, zero_crossings, n)) * _blackman_harris(n)

    # Real cepstrum
    with np.errstate(divide="ignore"):
        log_magnitude = np.log(np.abs(np.fft.fft(x)))
    log_magnitude = np.maximum(log_magnitude, -30.0)
    cepstrum = np.fft.ifft(log_magnitude).real

    # Minimum-phase reconstruction
    cepstrum[1 : n // 2] *= 2.0
    cepstrum[(n + 1) // 2 :] = 0.0
    minimum_phase = np.fft.ifft(np.exp(np.fft.fft(cepstrum))).real

    step = np.cumsum(minimum_phase)
    step /= step[-1]
    impulse = np.append(step, 1.0)
    impulse.setflags(write=False)
    return impulse


class MinBlepGenerator:
    """Adds band-limited step corrections for discontinuities between samples."""

    def __init__(self, zero_crossings: int = 16, oversample: int = 16, width: int = LANES) -> None:
        self.zero_crossings = zero_crossings
        self.oversample = oversample
        self.width = width
        self.impulse = _min_blep_impulse(zero_crossings, oversample)
        self.buffer = np.zeros((2 * zero_crossings, width))
        self.position = 0

    def insert_discontinuity(self, phase: float, jump) -> None:
        """Record a jump of `jump` at `phase` samples in the past, in (-1, 0]."""
        if not -1.0 < phase <= 0.0:
            return
        size = 2 * self.zero_crossings
        j = np.arange(size)
        blep_index = (j - phase) * self.oversample
        index = np.minimum(blep_index.astype(int), size * self.oversample - 1)
        t = blep_index - index
        values = crossfade(self.impulse[index], self.impulse[index + 1], t)
        rows = (self.position + j) % size
        jumps = np.broadcast_to(np.asarray(jump, dtype=float), (self.width,))
        self.buffer[rows] += np.outer(values - 1.0, jumps)

    def process(self) -> np.ndarray:
        value = self.buffer[self.position].copy()
        self.buffer[self.position] = 0.0
        self.position = (self.position + 1) % len(self.buffer)
        return value


class RCFilter:
    """First-order RC filter from the bilinear transform."""

    def __init__(self, width: int = LANES) -> None:
        self.width = width
        self.c = np.zeros(width)
        self.x_state = np.zeros(width)
        self.y_state = np.zeros(width)

    def set_cutoff_freq(self, cutoff) -> None:
        """Set the cutoff as a fraction of the sample rate."""
        self.c = 2.0 / (2.0 * math.pi * np.asarray(cutoff, dtype=float))

    def process(self, value) -> None:
        value = np.asarray(value, dtype=float)
        y = (value + self.x_state - self.y_state * (1.0 - self.c)) / (1.0 + self.c)
        self.x_state = value
        self.y_state = y

    def lowpass(self) -> np.ndarray:
        return self.y_state

    def highpass(self) -> np.ndarray:
        return self.x_state - self.y_state


def _crossed(crossing: np.ndarray) -> np.ndarray:
    return (crossing > 0.0) & (crossing <= 1.0)


class Oscillator:
    """Four-lane oscillator producing sine, triangle, saw and square at once."""

    def __init__(self, oversample: int = 16, quality: int = 16, width: int = LANES) -> None:
        self.width = width
        self.analog = False
        self.soft = False
        self.sync_enabled = False
        self.channels = 0

        self.last_sync_value = np.zeros(width)
        self.phase = np.zeros(width)
        self.freq = np.zeros(width)
        self.pulse_width = np.full(width, 0.5)
        self.sync_direction = np.ones(width)

        self.sqr_filter = RCFilter(width)
        self.sqr_blep = MinBlepGenerator(quality, oversample, width)
        self.saw_blep = MinBlepGenerator(quality, oversample, width)
        self.tri_blep = MinBlepGenerator(quality, oversample, width)
        self.sin_blep = MinBlepGenerator(quality, oversample, width)

        self.sqr_value = np.zeros(width)
        self.saw_value = np.zeros(width)
        self.tri_value = np.zeros(width)
        self.sin_value = np.zeros(width)

    def _lanes(self, value) -> np.ndarray:
        return np.broadcast_to(np.asarray(value, dtype=float), (self.width,)).copy()

    def set_pulse_width(self, pulse_width) -> None:
        self.pulse_width = np.clip(self._lanes(pulse_width), _PW_MIN, 1.0 - _PW_MIN)

    def _insert(self, generator: MinBlepGenerator, crossing: np.ndarray, mask: np.ndarray, jump: np.ndarray) -> None:
        """Insert one discontinuity per flagged lane, each confined to its own lane."""
        for lane in range(min(self.channels, self.width)):
            if mask[lane]:
                lane_jump = np.zeros(self.width)
                lane_jump[lane] = jump[lane]
                generator.insert_discontinuity(float(crossing[lane]) - 1.0, lane_jump)

    def process(self, delta_time: float, sync_value) -> None:
        sync_value = self._lanes(sync_value)
        freq = self._lanes(self.freq)

        delta_phase = np.clip(freq * delta_time, 0.0, _MAX_DELTA_PHASE)
        if self.soft:
            delta_phase = delta_phase * self.sync_direction
        else:
            self.sync_direction = np.ones(self.width)
        phase = self.phase + delta_phase
        phase = phase - np.floor(phase)
        previous = phase - delta_phase

        with np.errstate(divide="ignore", invalid="ignore"):
            # Square jumps when crossing 0, or 1 when running backwards
            wrap_phase = np.where(self.sync_direction == -1.0, 1.0, 0.0)
            wrap_crossing = (wrap_phase - previous) / delta_phase
            self._insert(self.sqr_blep, wrap_crossing, _crossed(wrap_crossing), 2.0 * self.sync_direction)

            # Square jumps when crossing the pulse width
            pulse_crossing = (self.pulse_width - previous) / delta_phase
            self._insert(self.sqr_blep, pulse_crossing, _crossed(pulse_crossing), -2.0 * self.sync_direction)

            # Saw jumps when crossing 0.5
            half_crossing = (0.5 - previous) / delta_phase
            self._insert(self.saw_blep, half_crossing, _crossed(half_crossing), -2.0 * self.sync_direction)

            # Sync crossing may be NaN or outside [0, 1)
            if self.sync_enabled:
                delta_sync = sync_value - self.last_sync_value
                sync_crossing = -self.last_sync_value / delta_sync
                self.last_sync_value = sync_value
                sync = _crossed(sync_crossing) & (sync_value >= 0.0)
                if sync.any():
                    if self.soft:
                        self.sync_direction = np.where(sync, -self.sync_direction, self.sync_direction)
                    else:
                        new_phase = np.where(sync, (1.0 - sync_crossing) * delta_phase, phase)
                        self._insert(self.sqr_blep, sync_crossing, sync, self.sqr_at(new_phase) - self.sqr_at(phase))
                        self._insert(self.saw_blep, sync_crossing, sync, self.saw_at(new_phase) - self.saw_at(phase))
                        self._insert(self.tri_blep, sync_crossing, sync, self.tri_at(new_phase) - self.tri_at(phase))
                        self._insert(self.sin_blep, sync_crossing, sync, self.sin_at(new_phase) - self.sin_at(phase))
                        phase = new_phase

        self.phase = phase

        self.sqr_value = self.sqr_at(phase) + self.sqr_blep.process()
        if self.analog:
            self.sqr_filter.set_cutoff_freq(20.0 * delta_time)
            self.sqr_filter.process(self.sqr_value)
            self.sqr_value = self.sqr_filter.highpass() * 0.95

        self.saw_value = self.saw_at(phase) + self.saw_blep.process()
        self.tri_value = self.tri_at(phase) + self.tri_blep.process()
        self.sin_value = self.sin_at(phase) + self.sin_blep.process()

    def sin_at(self, phase):
        phase = np.asarray(phase, dtype=float)
        if self.analog:
            # Quadratic sine with slightly richer harmonics
            half = phase < 0.5
            x = phase - np.where(half, 0.25, 0.75)
            return (1.0 - 16.0 * x**2) * np.where(half, 1.0, -1.0)
        return sin2pi_pade(phase)

    def tri_at(self, phase):
        phase = np.asarray(phase, dtype=float)
        if self.analog:
            x = phase + 0.25
            x = x - np.trunc(x)
            upper = x >= 0.5
            x = x * 2.0
            x = x - np.trunc(x)
            return exp_curve(x) * np.where(upper, 1.0, -1.0)
        return 1.0 - 4.0 * np.minimum(np.abs(phase - 0.25), np.abs(phase - 1.25))

    def saw_at(self, phase):
        x = np.asarray(phase, dtype=float) + 0.5
        x = x - np.trunc(x)
        if self.analog:
            return -exp_curve(x)
        return 2.0 * x - 1.0

    def sqr_at(self, phase):
        return np.where(np.asarray(phase, dtype=float) < self.pulse_width, 1.0, -1.0)

    def light(self):
        return np.sin(2.0 * math.pi * self.phase)


def _poly_block(port: Port, c: int) -> np.ndarray:
    if port.is_monophonic:
        return np.full(LANES, port.voltages[0], dtype=float)
    return np.asarray(port.voltages[c : c + LANES], dtype=float)


class VCO(Module):
    MODE_PARAM = 0
    SYNC_PARAM = 1
    FREQ_PARAM = 2
    FINE_PARAM = 3
    FM_PARAM = 4
    PW_PARAM = 5
    PW_CV_PARAM = 6
    LINEAR_PARAM = 7
    NUM_PARAMS = 8

    PITCH_INPUT = 0
    FM_INPUT = 1
    SYNC_INPUT = 2
    PW_INPUT = 3
    NUM_INPUTS = 4

    SIN_OUTPUT = 0
    TRI_OUTPUT = 1
    SAW_OUTPUT = 2
    SQR_OUTPUT = 3
    NUM_OUTPUTS = 4

    PHASE_LIGHT = 0
    LINEAR_LIGHT = 3
    SOFT_LIGHT = 4
    NUM_LIGHTS = 5

    def __init__(self) -> None:
        super().__init__()
        self._config(self.NUM_PARAMS, self.NUM_INPUTS, self.NUM_OUTPUTS, self.NUM_LIGHTS)
        self._config_switch(self.LINEAR_PARAM, 0.0, 1.0, 0.0, "FM mode", ("1V/octave", "Linear"))
        self._config_switch(self.SYNC_PARAM, 0.0, 1.0, 1.0, "Sync mode", ("Soft", "Hard"))
        self._config_param(self.FREQ_PARAM, -54.0, 54.0, 0.0, "Frequency", " Hz", FREQ_SEMITONE, FREQ_C4)
        fm = self._config_param(self.FM_PARAM, -1.0, 1.0, 0.0, "Frequency modulation", "%", 0.0, 100.0)
        fm.randomize_enabled = False
        self._config_param(self.PW_PARAM, 0.01, 0.99, 0.5, "Pulse width", "%", 0.0, 100.0)
        pw_cv = self._config_param(self.PW_CV_PARAM, -1.0, 1.0, 0.0, "Pulse width modulation", "%", 0.0, 100.0)
        pw_cv.randomize_enabled = False

        self._config_input(self.PITCH_INPUT, "1V/octave pitch")
        self._config_input(self.FM_INPUT, "Frequency modulation")
        self._config_input(self.SYNC_INPUT, "Sync")
        self._config_input(self.PW_INPUT, "Pulse width modulation")

        self._config_output(self.SIN_OUTPUT, "Sine")
        self._config_output(self.TRI_OUTPUT, "Triangle")
        self._config_output(self.SAW_OUTPUT, "Sawtooth")
        self._config_output(self.SQR_OUTPUT, "Square")

        self.oscillators = [Oscillator(16, 16, LANES) for _ in range(_NUM_OSCILLATORS)]
        self.light_divider = ClockDivider(division=16)

    def process(self, args: ProcessArgs) -> None:
        freq_param = self.params[self.FREQ_PARAM].value / 12.0
        fm_param = self.params[self.FM_PARAM].value
        pw_param = self.params[self.PW_PARAM].value
        pw_cv_param = self.params[self.PW_CV_PARAM].value
        linear = self.params[self.LINEAR_PARAM].value > 0.0
        soft = self.params[self.SYNC_PARAM].value <= 0.0

        channels = max(self.inputs[self.PITCH_INPUT].channels, 1)
        waves = (
            (self.outputs[self.SIN_OUTPUT], "sin_value"),
            (self.outputs[self.TRI_OUTPUT], "tri_value"),
            (self.outputs[self.SAW_OUTPUT], "saw_value"),
            (self.outputs[self.SQR_OUTPUT], "sqr_value"),
        )

        for c in range(0, channels, LANES):
            oscillator = self.oscillators[c // LANES]
            oscillator.channels = min(channels - c, LANES)
            oscillator.analog = True
            oscillator.soft = soft

            pitch = freq_param + _poly_block(self.inputs[self.PITCH_INPUT], c)
            fm = _poly_block(self.inputs[self.FM_INPUT], c)
            if not linear:
                pitch = pitch + fm * fm_param
                freq = FREQ_C4 * approx_exp2(pitch + 30.0) / 2.0**30
            else:
                freq = FREQ_C4 * approx_exp2(pitch + 30.0) / 2.0**30
                freq = freq + FREQ_C4 * fm * fm_param
            oscillator.freq = clamp(freq, 0.0, args.sample_rate / 2.0)

            pw = pw_param + _poly_block(self.inputs[self.PW_INPUT], c) / 10.0 * pw_cv_param
            oscillator.set_pulse_width(pw)

            sync_port = self.inputs[self.SYNC_INPUT]
            oscillator.sync_enabled = sync_port.is_connected
            oscillator.process(args.sample_time, _poly_block(sync_port, c))

            for port, attribute in waves:
                if port.is_connected:
                    port.voltages[c : c + LANES] = [float(v) for v in 5.0 * getattr(oscillator, attribute)]

        for port, _ in waves:
            port.set_channels(channels)

        if self.light_divider.process():
            self.lights[self.LINEAR_LIGHT].brightness = float(linear)
            self.lights[self.SOFT_LIGHT].brightness = float(soft)