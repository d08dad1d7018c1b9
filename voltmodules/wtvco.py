"""Wavetable oscillator with band-limited octaves, linear FM and hard or soft sync."""

from __future__ import annotations

import math
import os
from typing import Any, Sequence

import numpy as np

from .engine import (
    FREQ_C4,
    FREQ_SEMITONE,
    BooleanTrigger,
    ClockDivider,
    Module,
    Port,
    ProcessArgs,
    approx_exp2,
    crossfade,
)
from .vco import MinBlepGenerator
from .wavetable import Wavetable

LANES = 4
_NUM_BLOCKS = 4
_STORAGE_NAME = "wavetable.wav"


def _poly_block(port: Port, c: int) -> np.ndarray:
    if port.is_monophonic:
        return np.full(LANES, port.voltages[0], dtype=float)
    return np.asarray(port.voltages[c : c + LANES], dtype=float)


class WTVCO(Module):
    MODE_PARAM = 0
    SOFT_PARAM = 1
    FREQ_PARAM = 2
    POS_PARAM = 3
    FM_PARAM = 4
    POS_CV_PARAM = 5
    LINEAR_PARAM = 6
    NUM_PARAMS = 7

    FM_INPUT = 0
    SYNC_INPUT = 1
    POS_INPUT = 2
    PITCH_INPUT = 3
    NUM_INPUTS = 4

    WAVE_OUTPUT = 0
    NUM_OUTPUTS = 1

    PHASE_LIGHT = 0
    SOFT_LIGHT = 3
    LINEAR_LIGHT = 4
    NUM_LIGHTS = 5

    def __init__(self) -> None:
        super().__init__()
        self._config(self.NUM_PARAMS, self.NUM_INPUTS, self.NUM_OUTPUTS, self.NUM_LIGHTS)
        self._config_switch(self.SOFT_PARAM, 0.0, 1.0, 0.0, "Sync", ("Hard", "Soft"))
        self._config_switch(
            self.LINEAR_PARAM, 0.0, 1.0, 0.0, "FM mode", ("1V/octave", "Through-zero linear")
        )
        self._config_param(self.FREQ_PARAM, -75.0, 75.0, 0.0, "Frequency", " Hz", FREQ_SEMITONE, FREQ_C4)
        self._config_param(self.POS_PARAM, 0.0, 1.0, 0.0, "Wavetable position", "%", 0.0, 100.0)
        fm = self._config_param(self.FM_PARAM, -1.0, 1.0, 0.0, "Frequency modulation", "%", 0.0, 100.0)
        fm.randomize_enabled = False
        pos_cv = self._config_param(
            self.POS_CV_PARAM, -1.0, 1.0, 0.0, "Wavetable position CV", "%", 0.0, 100.0
        )
        pos_cv.randomize_enabled = False

        self._config_input(self.FM_INPUT, "Frequency modulation")
        self._config_input(self.SYNC_INPUT, "Sync")
        self._config_input(self.POS_INPUT, "Wavetable position")
        self._config_input(self.PITCH_INPUT, "1V/octave pitch")
        self._config_output(self.WAVE_OUTPUT, "Wavetable")
        self._config_light(self.PHASE_LIGHT, "Phase")

        self.wavetable = Wavetable()
        self.wavetable.set_quality(8)
        self.phases = [np.zeros(LANES) for _ in range(_NUM_BLOCKS)]
        self.last_pos = 0.0
        self.sync_bleps = [MinBlepGenerator(16, 16, LANES) for _ in range(_NUM_BLOCKS)]
        self.last_sync_values = [np.zeros(LANES) for _ in range(_NUM_BLOCKS)]
        self.sync_directions = [np.zeros(LANES) for _ in range(_NUM_BLOCKS)]
        self.light_divider = ClockDivider(division=16)
        self.soft_trigger = BooleanTrigger()
        self.linear_trigger = BooleanTrigger()
        self.on_reset()

    def on_reset(self) -> None:
        self.wavetable.reset()
        self.sync_directions = [np.ones(LANES) for _ in range(_NUM_BLOCKS)]

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

    def clear_output(self) -> None:
        out = self.outputs[self.WAVE_OUTPUT]
        out.set_voltage(0.0)
        out.set_channels(1)

    def _octave_index(self, octave: float) -> int:
        last = self.wavetable.octaves - 1
        if not math.isfinite(octave):
            return last
        whole = math.trunc(octave)
        if whole < 0:
            return last
        return min(whole, last)

    def get_wave(self, index: float, pos: float, octave: float) -> float:
        """Band-limited wave value at a fractional upsampled index and table position."""
        wt = self.wavetable
        size = wt.wave_len * wt.quality
        index_f = index - math.trunc(index)
        index0 = int(index) % size
        index1 = (index0 + 1) % size
        pos_f = pos - math.trunc(pos)
        pos0 = int(pos)
        octave0 = self._octave_index(octave)

        out = crossfade(
            wt.interpolated_at(octave0, pos0, index0), wt.interpolated_at(octave0, pos0, index1), index_f
        )
        if pos_f > 0.0:
            out1 = crossfade(
                wt.interpolated_at(octave0, pos0 + 1, index0),
                wt.interpolated_at(octave0, pos0 + 1, index1),
                index_f,
            )
            out = crossfade(out, out1, pos_f)
        return out

    def process(self, args: ProcessArgs) -> None:
        freq_param = self.params[self.FREQ_PARAM].value / 12.0
        fm_param = self.params[self.FM_PARAM].value
        pos_param = self.params[self.POS_PARAM].value
        pos_cv_param = self.params[self.POS_CV_PARAM].value
        soft = self.params[self.SOFT_PARAM].value > 0.0
        linear = self.params[self.LINEAR_PARAM].value > 0.0
        sync_port = self.inputs[self.SYNC_INPUT]
        sync_enabled = sync_port.is_connected

        pitch_port = self.inputs[self.PITCH_INPUT]
        fm_port = self.inputs[self.FM_INPUT]
        channels = max(1, pitch_port.channels, fm_port.channels)
        out_port = self.outputs[self.WAVE_OUTPUT]
        wt = self.wavetable
        wave_count = wt.wave_count
        nyquist = args.sample_rate / 2.0

        if not wt.loading and wt.wave_len >= 2 and wave_count >= 1:
            upsampled_len = wt.wave_len * wt.quality
            for c in range(0, channels, LANES):
                block = c // LANES
                pitch = freq_param + _poly_block(pitch_port, c)
                fm = _poly_block(fm_port, c)
                if not linear:
                    pitch = pitch + fm * fm_param
                    freq = FREQ_C4 * approx_exp2(pitch + 30.0) / 2.0**30
                else:
                    freq = FREQ_C4 * approx_exp2(pitch + 30.0) / 2.0**30
                    freq = freq + FREQ_C4 * fm * fm_param

                freq = np.minimum(freq, nyquist)
                with np.errstate(divide="ignore", invalid="ignore"):
                    octave = np.log2(nyquist / freq)

                if not soft:
                    self.sync_directions[block] = np.ones(LANES)
                # Delta phase is negative while running backwards.
                delta_phase = freq * args.sample_time * self.sync_directions[block]
                phase = self.phases[block] + delta_phase
                phase = phase - np.floor(phase)
                self.phases[block] = phase
                index = phase * upsampled_len

                pos = pos_param + _poly_block(self.inputs[self.POS_INPUT], c) * pos_cv_param / 10.0
                pos = np.clip(pos, 0.0, 1.0) * (wave_count - 1)
                if c == 0:
                    self.last_pos = float(pos[0])

                lanes = min(LANES, channels - c)
                out = np.zeros(LANES)
                for cc in range(lanes):
                    out[cc] = self.get_wave(float(index[cc]), float(pos[cc]), float(octave[cc]))

                if sync_enabled:
                    self._sync(block, c, lanes, soft, delta_phase, pos, octave, out)
                out = out + self.sync_bleps[block].process()

                out_port.voltages[c : c + LANES] = [float(v) for v in out * 5.0]
        else:
            # Invalid wavetable: output silence
            for c in range(0, channels, LANES):
                out_port.voltages[c : c + LANES] = [0.0] * LANES

        out_port.set_channels(channels)

        if self.light_divider.process():
            self.lights[self.LINEAR_LIGHT].brightness = float(linear)
            self.lights[self.SOFT_LIGHT].brightness = float(soft)

    def _sync(
        self,
        block: int,
        c: int,
        lanes: int,
        soft: bool,
        delta_phase: np.ndarray,
        pos: np.ndarray,
        octave: np.ndarray,
        out: np.ndarray,
    ) -> None:
        sync_value = _poly_block(self.inputs[self.SYNC_INPUT], c)
        last = self.last_sync_values[block]
        with np.errstate(divide="ignore", invalid="ignore"):
            sync_crossing = -last / (sync_value - last)
        self.last_sync_values[block] = sync_value
        sync = (sync_crossing > 0.0) & (sync_crossing <= 1.0) & (sync_value >= 0.0)
        if not sync.any():
            return
        if soft:
            self.sync_directions[block] = np.where(sync, -self.sync_directions[block], self.sync_directions[block])
            return

        self.phases[block] = np.where(sync, (1.0 - sync_crossing) * delta_phase, self.phases[block])
        upsampled_len = self.wavetable.wave_len * self.wavetable.quality
        for cc in range(lanes):
            if not sync[cc]:
                continue
            index = float(self.phases[block][cc]) * upsampled_len
            jumped = self.get_wave(index, float(pos[cc]), float(octave[cc]))
            jump = np.zeros(LANES)
            jump[cc] = jumped - out[cc]
            self.sync_bleps[block].insert_discontinuity(float(sync_crossing[cc]) - 1.0, jump)

    def params_from_json(self, data: Sequence[dict[str, Any]]) -> None:
        # Older patches have no position attenuverter, so it defaults to fully open.
        self.params[self.POS_CV_PARAM].value = 1.0
        super().params_from_json(data)

    def data_to_json(self) -> dict[str, Any]:
        return dict(self.wavetable.to_json())

    def data_from_json(self, data: dict[str, Any]) -> None:
        self.wavetable.from_json(data)