"""Registry of the modules available in this package, by slug."""

from __future__ import annotations

from .engine import Module
from .split import Split
from .sum import Sum
from .unity import Unity
from .vca import VCA, VCA1
from .vcf import VCF
from .vcmixer import VCMixer
from .vco import VCO
from .viz import Viz
from .wtlfo import WTLFO
from .wtvco import WTVCO

_MODELS: dict[str, type[Module]] = {
    "VCO": VCO,
    "VCO2": WTVCO,
    "VCF": VCF,
    "VCA-1": VCA1,
    "VCA": VCA,
    "LFO2": WTLFO,
    "VCMixer": VCMixer,
    "Unity": Unity,
    "Split": Split,
    "Sum": Sum,
    "Viz": Viz,
}


def available_models() -> list[str]:
    """Slugs of all registered modules, in registration order."""
    return list(_MODELS)


def create_module(slug: str) -> Module:
    """Create a new module instance; raises KeyError for an unknown slug."""
    try:
        factory = _MODELS[slug]
    except KeyError:
        raise KeyError(f"unknown model {slug!r}") from None
    return factory()