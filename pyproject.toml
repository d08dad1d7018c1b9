[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "voltmodules"
version = "0.1.0"
description = "Modular synthesizer modules (oscillators, filters, VCAs, mixers, wavetables) processed sample by sample"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "synthesizer",
    "modular",
    "oscillator",
    "filter",
    "wavetable",
    "dsp",
    "audio",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Sound/Audio",
    "Topic :: Multimedia :: Sound/Audio :: Sound Synthesis",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["voltmodules"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
