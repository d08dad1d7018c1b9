"""Modular synthesizer modules, wavetables and DSP helpers, processed sample by sample."""

__version__ = "0.1.0"

__all__ = [
    "engine",
    "models",
    "split",
    "sum",
    "unity",
    "vca",
    "vcf",
    "vcmixer",
    "vco",
    "viz",
    "wavetable",
    "wtlfo",
    "wtvco",
]