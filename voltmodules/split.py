"""Split a polyphonic signal into 16 monophonic outputs."""

from __future__ import annotations

from .engine import MAX_CHANNELS, Module, ProcessArgs


class Split(Module):
    POLY_INPUT = 0
    MONO_OUTPUTS = 0

    def __init__(self) -> None:
        super().__init__()
        self._config(0, 1, MAX_CHANNELS, MAX_CHANNELS)
        self._config_input(self.POLY_INPUT, "Polyphonic")
        for i in range(MAX_CHANNELS):
            self._config_output(self.MONO_OUTPUTS + i, f"Channel {i + 1}")
        self.last_channels = 0

    def process(self, args: ProcessArgs) -> None:
        source = self.inputs[self.POLY_INPUT]
        # Undefined channels are passed through as-is so faulty upstream modules can be debugged.
        for c, output in enumerate(self.outputs[self.MONO_OUTPUTS : self.MONO_OUTPUTS + MAX_CHANNELS]):
            output.set_voltage(source.get_voltage(c))
        self.last_channels = source.channels