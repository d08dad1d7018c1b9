"""Wavetable low-frequency oscillator with clock sync, reset and position CV."""

from __future__ import annotations

import math
import os
from typing import Any, Sequence

import numpy as np

from .engine import (
    BooleanTrigger,
    ClockDivider,
    Module,
    Port,
    ProcessArgs,
    SchmittTrigger,
    Timer,
    approx_exp2,
    crossfade,
    rescale,
)
from .wavetable import Wavetable

LANES = 4
_NUM_BLOCKS = 4
_STORAGE_NAME = "wavetable.wav"


def _block(port: Port, c: int) -> np.ndarray:
    return np.asarray(port.voltages[c : c + LANES], dtype=float)


def _poly_block(port: Port, c: int) -> np.ndarray:
    if port.is_monophonic:
        return np.full(LANES, port.voltages[0], dtype=float)
    return _block(port, c)


class WTLFO(Module):
    OFFSET_PARAM = 0
    INVERT_PARAM = 1
    FREQ_PARAM = 2
    POS_PARAM = 3
    FM_PARAM = 4
    POS_CV_PARAM = 5
    NUM_PARAMS = 6

    FM_INPUT = 0
    RESET_INPUT = 1
    POS_INPUT = 2
    CLOCK_INPUT = 3
    NUM_INPUTS = 4

    WAVE_OUTPUT = 0
    NUM_OUTPUTS = 1

    PHASE_LIGHT = 0
    OFFSET_LIGHT = 3
    INVERT_LIGHT = 4
    NUM_LIGHTS = 5

    def __init__(self) -> None:
        super().__init__()
        self._config(self.NUM_PARAMS, self.NUM_INPUTS, self.NUM_OUTPUTS, self.NUM_LIGHTS)
        self._config_switch(self.OFFSET_PARAM, 0.0, 1.0, 1.0, "Offset", ("Bipolar", "Unipolar"))
        self._config_switch(self.INVERT_PARAM, 0.0, 1.0, 0.0, "Invert")
        self._config_param(self.FREQ_PARAM, -8.0, 10.0, 1.0, "Frequency", " Hz", 2.0, 1.0)
        self._config_param(self.POS_PARAM, 0.0, 1.0, 0.0, "Wavetable position", "%", 0.0, 100.0)
        fm = self._config_param(self.FM_PARAM, -1.0, 1.0, 0.0, "Frequency modulation", "%", 0.0, 100.0)
        fm.randomize_enabled = False
        pos_cv = self._config_param(
            self.POS_CV_PARAM, -1.0, 1.0, 0.0, "Wavetable position CV", "%", 0.0, 100.0
        )
        pos_cv.randomize_enabled = False

        self._config_input(self.FM_INPUT, "Frequency modulation")
        self._config_input(self.RESET_INPUT, "Reset")
        self._config_input(self.POS_INPUT, "Wavetable position")
        self._config_input(self.CLOCK_INPUT, "Clock")
        self._config_output(self.WAVE_OUTPUT, "Wavetable")
        self._config_light(self.PHASE_LIGHT, "Phase")

        self.wavetable = Wavetable()
        self.phases = [np.zeros(LANES) for _ in range(_NUM_BLOCKS)]
        self.last_pos = 0.0
        self.clock_freq = 1.0
        self.clock_timer = Timer()
        self.light_divider = ClockDivider(division=16)
        self.offset_trigger = BooleanTrigger()
        self.invert_trigger = BooleanTrigger()
        self.clock_trigger = SchmittTrigger()
        self.reset_triggers = [[SchmittTrigger() for _ in range(LANES)] for _ in range(_NUM_BLOCKS)]
        self.on_reset()

    def on_reset(self) -> None:
        self.wavetable.reset()
        self.phases = [np.zeros(LANES) for _ in range(_NUM_BLOCKS)]
        self.clock_freq = 1.0
        self.clock_timer.reset()

    def on_add(self, storage_dir: str | os.PathLike[str]) -> None:
        """Load the wavetable kept with the patch; a missing file is ignored."""
        self.wavetable.load(os.path.join(os.fspath(storage_dir), _STORAGE_NAME))

    def on_save(self, storage_dir: str | os.PathLike[str]) -> None:
        """Store the wavetable with the patch, creating the directory if needed."""
        if len(self.wavetable.samples) == 0:
            return
        directory = os.fspath(storage_dir)
        os.makedirs(directory, exist_ok=True)
        self.wavetable.save(os.path.join(directory, _STORAGE_NAME))

    def _update_clock(self, args: ProcessArgs) -> None:
        clock = self.inputs[self.CLOCK_INPUT]
        if not clock.is_connected:
            # Default frequency when the clock is unpatched
            self.clock_freq = 2.0
            return
        self.clock_timer.process(args.sample_time)
        if self.clock_trigger.process(clock.get_voltage(), 0.1, 2.0):
            clock_freq = 1.0 / self.clock_timer.time
            self.clock_timer.reset()
            if 0.001 <= clock_freq <= 1000.0:
                self.clock_freq = clock_freq

    def _sample(self, phase: float, pos: float) -> float:
        wt = self.wavetable
        phase_f = phase - math.trunc(phase)
        i0 = int(phase) % wt.wave_len
        i1 = (i0 + 1) % wt.wave_len
        pos_f = pos - math.trunc(pos)
        pos0 = int(pos)
        out0 = crossfade(wt.at(pos0, i0), wt.at(pos0, i1), phase_f)
        if pos_f > 0.0:
            out1 = crossfade(wt.at(pos0 + 1, i0), wt.at(pos0 + 1, i1), phase_f)
            return crossfade(out0, out1, pos_f)
        return out0

    def process(self, args: ProcessArgs) -> None:
        freq_param = self.params[self.FREQ_PARAM].value
        fm_param = self.params[self.FM_PARAM].value
        pos_param = self.params[self.POS_PARAM].value
        pos_cv_param = self.params[self.POS_CV_PARAM].value
        offset = self.params[self.OFFSET_PARAM].value > 0.0
        invert = self.params[self.INVERT_PARAM].value > 0.0

        self._update_clock(args)

        fm_port = self.inputs[self.FM_INPUT]
        channels = max(1, fm_port.channels)
        out_port = self.outputs[self.WAVE_OUTPUT]
        wt = self.wavetable
        wave_count = wt.wave_count

        if not wt.loading and wt.wave_len >= 2 and wave_count >= 1:
            for c in range(0, channels, LANES):
                block = c // LANES
                pitch = freq_param + _block(fm_port, c) * fm_param
                freq = self.clock_freq / 2.0 * approx_exp2(pitch + 30.0) / 2.0**30
                freq = np.minimum(freq, 1024.0)

                phase = self.phases[block] + freq * args.sample_time
                phase = phase - np.trunc(phase)
                reset_levels = rescale(_poly_block(self.inputs[self.RESET_INPUT], c), 0.1, 2.0, 0.0, 1.0)
                reset = np.array(
                    [t.process(float(v)) for t, v in zip(self.reset_triggers[block], reset_levels)]
                )
                phase = np.where(reset, 0.0, phase)
                self.phases[block] = phase
                scaled = phase * wt.wave_len

                pos = pos_param + _poly_block(self.inputs[self.POS_INPUT], c) * pos_cv_param / 10.0
                pos = np.clip(pos, 0.0, 1.0) * (wave_count - 1)
                if c == 0:
                    self.last_pos = float(pos[0])

                out = np.zeros(LANES)
                for cc in range(min(LANES, channels - c)):
                    out[cc] = self._sample(float(scaled[cc]), float(pos[cc]))

                if invert:
                    out = -out
                if offset:
                    out = out + 1.0
                out_port.voltages[c : c + LANES] = [float(v) for v in out * 5.0]
        else:
            # Invalid wavetable: output silence
            for c in range(0, channels, LANES):
                out_port.voltages[c : c + LANES] = [0.0] * LANES

        out_port.set_channels(channels)

        if self.light_divider.process():
            self.lights[self.OFFSET_LIGHT].brightness = float(offset)
            self.lights[self.INVERT_LIGHT].brightness = float(invert)

    def params_from_json(self, data: Sequence[dict[str, Any]]) -> None:
        # Older patches have no position attenuverter, so it defaults to fully open.
        self.params[self.POS_CV_PARAM].value = 1.0
        super().params_from_json(data)

    def data_to_json(self) -> dict[str, Any]:
        return dict(self.wavetable.to_json())

    def data_from_json(self, data: dict[str, Any]) -> None:
        self.wavetable.from_json(data)