"""Voltage-controlled amplifiers: the single-channel VCA-1 and the dual VCA."""

from __future__ import annotations

import numpy as np

from .engine import Module, Port, ProcessArgs, Param, clamp, rescale

_EXP_BASE = 50.0
_BLOCK = 4


class VCA1(Module):
    LEVEL_PARAM = 0
    EXP_PARAM = 1
    CV_INPUT = 0
    IN_INPUT = 1
    OUT_OUTPUT = 0
    BYPASS_ROUTES = ((IN_INPUT, OUT_OUTPUT),)

    def __init__(self) -> None:
        super().__init__()
        self._config(2, 2, 1)
        self._config_param(self.LEVEL_PARAM, 0.0, 1.0, 1.0, "Level", "%", 0.0, 100.0)
        self._config_switch(self.EXP_PARAM, 0.0, 1.0, 1.0, "Response mode", ("Exponential", "Linear"))
        self._config_input(self.CV_INPUT, "CV")
        self._config_input(self.IN_INPUT, "Channel")
        self._config_output(self.OUT_OUTPUT, "Channel")
        self.last_channels = 1
        self.last_gains = [0.0] * 16

    @property
    def exponential(self) -> bool:
        return self.params[self.EXP_PARAM].value == 0.0

    @exponential.setter
    def exponential(self, value: bool) -> None:
        self.params[self.EXP_PARAM].value = 0.0 if value else 1.0

    def process(self, args: ProcessArgs) -> None:
        source = self.inputs[self.IN_INPUT]
        cv_port = self.inputs[self.CV_INPUT]
        out = self.outputs[self.OUT_OUTPUT]
        channels = max(1, source.channels, cv_port.channels)
        level = self.params[self.LEVEL_PARAM].value
        exponential = int(self.params[self.EXP_PARAM].value) == 0

        for c in range(channels):
            gain = level
            if cv_port.is_connected:
                cv = clamp(cv_port.get_poly_voltage(c) / 10.0, 0.0, 1.0)
                if exponential:
                    cv = cv**4
                gain *= cv
            self.last_gains[c] = gain
            out.set_voltage(source.get_poly_voltage(c) * gain, c)

        out.set_channels(channels)
        self.last_channels = channels


class VCA(Module):
    """Dual VCA with linear and exponential CV inputs."""

    LEVEL1_PARAM = 0
    LEVEL2_PARAM = 1
    EXP1_INPUT = 0
    LIN1_INPUT = 1
    IN1_INPUT = 2
    EXP2_INPUT = 3
    LIN2_INPUT = 4
    IN2_INPUT = 5
    OUT1_OUTPUT = 0
    OUT2_OUTPUT = 1
    BYPASS_ROUTES = ((IN1_INPUT, OUT1_OUTPUT), (IN2_INPUT, OUT2_OUTPUT))

    def __init__(self) -> None:
        super().__init__()
        self._config(2, 6, 2)
        self._config_param(self.LEVEL1_PARAM, 0.0, 1.0, 1.0, "Channel 1 level", "%", 0.0, 100.0)
        self._config_param(self.LEVEL2_PARAM, 0.0, 1.0, 1.0, "Channel 2 level", "%", 0.0, 100.0)
        self._config_input(self.EXP1_INPUT, "Channel 1 exponential CV")
        self._config_input(self.EXP2_INPUT, "Channel 2 exponential CV")
        self._config_input(self.LIN1_INPUT, "Channel 1 linear CV")
        self._config_input(self.LIN2_INPUT, "Channel 2 linear CV")
        self._config_input(self.IN1_INPUT, "Channel 1")
        self._config_input(self.IN2_INPUT, "Channel 2")
        self._config_output(self.OUT1_OUTPUT, "Channel 1")
        self._config_output(self.OUT2_OUTPUT, "Channel 2")

    @staticmethod
    def _cv_gain(port: Port, width: int) -> np.ndarray | float:
        if port.is_polyphonic:
            return np.clip(np.asarray(port.voltages[:width]) / 10.0, 0.0, 1.0)
        return clamp(port.get_voltage() / 10.0, 0.0, 1.0)

    @staticmethod
    def _process_channel(source: Port, level: Param, lin: Port, exp: Port, out: Port) -> None:
        channels = max(source.channels, 1)
        # Voltages are handled in blocks of four lanes.
        width = -(-channels // _BLOCK) * _BLOCK
        v = np.asarray(source.voltages[:width], dtype=float) * level.value

        if lin.is_connected:
            v = v * VCA._cv_gain(lin, width)
        if exp.is_connected:
            cv = VCA._cv_gain(exp, width)
            v = v * rescale(np.power(_EXP_BASE, cv), 1.0, _EXP_BASE, 0.0, 1.0)

        out.set_channels(channels)
        out.voltages[:width] = [float(x) for x in v]

    def process(self, args: ProcessArgs) -> None:
        self._process_channel(
            self.inputs[self.IN1_INPUT],
            self.params[self.LEVEL1_PARAM],
            self.inputs[self.LIN1_INPUT],
            self.inputs[self.EXP1_INPUT],
            self.outputs[self.OUT1_OUTPUT],
        )
        self._process_channel(
            self.inputs[self.IN2_INPUT],
            self.params[self.LEVEL2_PARAM],
            self.inputs[self.LIN2_INPUT],
            self.inputs[self.EXP2_INPUT],
            self.outputs[self.OUT2_OUTPUT],
        )