# voltmodules

A collection of modular-synthesizer modules that run one sample at a time.
Each module is registered under a slug:

| Slug      | Class                        | What it does |
|-----------|------------------------------|--------------|
| `VCO`     | `voltmodules.vco.VCO`        | Analog-style oscillator: sine, triangle, sawtooth and square outputs, hard and soft sync, exponential or linear FM, pulse-width control. |
| `VCO2`    | `voltmodules.wtvco.WTVCO`    | Wavetable oscillator with band-limited octaves, linear FM and hard or soft sync. |
| `LFO2`    | `voltmodules.wtlfo.WTLFO`    | Wavetable LFO with clock input, reset, invert and unipolar offset. |
| `VCF`     | `voltmodules.vcf.VCF`        | Four-pole ladder filter with lowpass and highpass outputs, drive and self-oscillating resonance. |
| `VCA-1`   | `voltmodules.vca.VCA1`       | Single VCA with exponential or linear response. |
| `VCA`     | `voltmodules.vca.VCA`        | Dual VCA with linear and exponential CV inputs. |
| `VCMixer` | `voltmodules.vcmixer.VCMixer`| Four-channel polyphonic mixer with CV-controlled levels. |
| `Unity`   | `voltmodules.unity.Unity`    | Two six-input unity mixers with sum/average modes, inverted outputs and VU lights. |
| `Split`   | `voltmodules.split.Split`    | Splits a polyphonic input into 16 mono outputs. |
| `Sum`     | `voltmodules.sum.Sum`        | Sums all channels into one, with a peak level meter. |
| `Viz`     | `voltmodules.viz.Viz`        | Shows each channel's voltage on a pair of lights. |

## Requirements

Python 3.10 or later and numpy.

## Usage

```python
from voltmodules.engine import ProcessArgs
from voltmodules.models import available_models, create_module
from voltmodules.vco import VCO

print(available_models())

vco = create_module("VCO")
sine = vco.outputs[VCO.SIN_OUTPUT]
sine.channels = 1                   # mark the output as connected

args = ProcessArgs(sample_rate=48000.0)
for _ in range(100):
    vco.process(args)
print(sine.get_voltage())
```

`create_module` raises `KeyError` for an unknown slug.

### Ports, parameters and lights

Every module has `params`, `inputs`, `outputs` and `lights` lists, indexed by
the class constants (`VCO.FREQ_PARAM`, `VCO.PITCH_INPUT`, ...).

- A `Port` holds up to 16 voltages and a channel count; a port with zero
  channels counts as disconnected. Feed an input by setting its `channels`
  and `voltages` (or `set_voltage`). Several modules only write an output
  that is connected, so give outputs a channel count before processing.
  `set_channels` leaves a disconnected port disconnected.
- A `Param` holds `value`, its range and default; `reset` restores the
  default.
- A `Light` holds `brightness`.

`ProcessArgs` carries the sample rate; `sample_time` is derived from it.

### Saving state

`params_to_json` / `params_from_json` store and restore parameter values.
`data_to_json` / `data_from_json` handle module-specific data: Unity's
`merge` flag, and the wave length and file name of the wavetable in VCO2 and
LFO2. When parameters are restored on VCF, VCO2 or LFO2, CV attenuators that
are missing from the saved data default to 1.

Other module extras:

- `Sum.read_meter()` returns the peak level of the latest 128-sample block
  (capped at 10 V) once per block, or `None` if nothing new was measured;
  `Sum.channel_text()` gives the input channel count as two digits.
- `VCA1.exponential` reads or sets the response mode.
- `WTLFO` and `WTVCO` have `on_add(storage_dir)` and `on_save(storage_dir)`,
  which load and save `wavetable.wav` in the given directory.

### Wavetables

`voltmodules.wavetable.Wavetable` holds the waves used by the wavetable
modules. `reset` fills it with sine, triangle, sawtooth and square waves of
1024 points. `load` reads `.wav` files (PCM 8/16/24/32-bit or float) as well
as raw `.f32`, `.i8`/`.s8`, `.i16`/`.s16`, `.i24`/`.s24` and `.i32`/`.s32`
data; any other extension is read as 32-bit integers. A WAV file whose sample
rate is a power of two sets the wave length. `save` writes the table as
16-bit mono WAV; `load_path` and `save_path` also record the file's
directory, and `save_path` adds a `.wav` extension when it is missing.
`set_quality` builds band-limited, upsampled copies of each wave, read with
`interpolated_at`.

### Helpers

`voltmodules.engine` provides the shared building blocks: `clamp`,
`crossfade`, `rescale`, `approx_exp2`, and the `ClockDivider`,
`SchmittTrigger`, `BooleanTrigger` and `Timer` classes. `range_labels` and
`find_range` describe the standard voltage ranges (0V to 10V, -5V to 5V and
so on). The oscillators' `MinBlepGenerator` and `RCFilter` live in
`voltmodules.vco`, and the `LadderFilter` and `step_rk4` in
`voltmodules.vcf`.

## What this package does not do

There is no command-line program, no graphical panel and no audio device
input or output. Modules are not patched together automatically: to connect
two modules, copy voltages from one module's output ports to another's input
ports between calls to `process`.