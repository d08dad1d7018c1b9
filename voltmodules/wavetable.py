"""Wavetable storage, band-limited upsampling and WAV or raw sample file I/O."""

from __future__ import annotations

import math
import os
import struct
import wave
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar, Iterator

import numpy as np

WAVETABLE_FILTERS = "WAV (.wav):wav,WAV;Raw:f32,i8,i16,i24,i32,*"
MAX_SAMPLES = 1 << 20

_FORMAT_PCM = 1
_FORMAT_IEEE_FLOAT = 3
_FORMAT_EXTENSIBLE = 0xFFFE


@dataclass(frozen=True)
class _WavData:
    sample_rate: int
    channels: int
    samples: np.ndarray


def _int24(data: bytes) -> np.ndarray:
    """Little-endian signed 24-bit integers."""
    raw = np.frombuffer(data, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
    values = raw[:, 0] | (raw[:, 1] << 8) | (raw[:, 2] << 16)
    return np.where(values & 0x800000, values - (1 << 24), values)


def _decode_pcm(tag: int, bits: int, payload: bytes) -> np.ndarray | None:
    if tag == _FORMAT_PCM:
        if bits == 8:
            return np.frombuffer(payload, dtype=np.uint8).astype(np.float64) * (2.0 / 255.0) - 1.0
        if bits == 16:
            return np.frombuffer(payload, dtype="<i2") / 32768.0
        if bits == 24:
            return _int24(payload) / 8388608.0
        if bits == 32:
            return np.frombuffer(payload, dtype="<i4") / 2147483648.0
        return None
    if tag == _FORMAT_IEEE_FLOAT:
        if bits == 32:
            return np.frombuffer(payload, dtype="<f4").astype(np.float64)
        if bits == 64:
            return np.frombuffer(payload, dtype="<f8")
    return None


def _read_wav(path: str) -> _WavData | None:
    """Parse a RIFF WAVE file into interleaved float samples; None if it cannot be read."""
    try:
        data = Path(path).read_bytes()
    except OSError:
        return None
    if len(data) < 12 or data[:4] != b"RIFF" or data[8:12] != b"WAVE":
        return None

    fmt: bytes | None = None
    payload: bytes | None = None
    pos = 12
    while pos + 8 <= len(data):
        chunk_id = data[pos : pos + 4]
        (size,) = struct.unpack_from("<I", data, pos + 4)
        body = data[pos + 8 : pos + 8 + size]
        if chunk_id == b"fmt ":
            fmt = body
        elif chunk_id == b"data":
            payload = body
            break
        pos += 8 + size + (size & 1)

    if fmt is None or payload is None or len(fmt) < 16:
        return None
    tag, channels, rate, _, block_align, bits = struct.unpack_from("<HHIIHH", fmt)
    if tag == _FORMAT_EXTENSIBLE:
        if len(fmt) < 26:
            return None
        (tag,) = struct.unpack_from("<H", fmt, 24)
    if channels == 0 or block_align == 0:
        return None

    frames = len(payload) // block_align
    decoded = _decode_pcm(tag, bits, payload[: frames * block_align])
    if decoded is None:
        return None
    return _WavData(rate, channels, decoded.astype(np.float32))


def _decode_raw(ext: str, data: bytes) -> np.ndarray:
    """Convert headerless sample data; unknown extensions are read as 32-bit integers."""
    if ext == ".f32":
        values = np.frombuffer(data[: len(data) // 4 * 4], dtype="<f4").astype(np.float64)
    elif ext in (".s8", ".i8"):
        values = np.frombuffer(data, dtype=np.int8) / 128.0
    elif ext in (".s16", ".i16"):
        values = np.frombuffer(data[: len(data) // 2 * 2], dtype="<i2") / 32768.0
    elif ext in (".s24", ".i24"):
        values = _int24(data[: len(data) // 3 * 3]) / 8388608.0
    else:
        values = np.frombuffer(data[: len(data) // 4 * 4], dtype="<i4") / 2147483648.0
    return values.astype(np.float32)


def _f32_to_s16(samples: np.ndarray) -> np.ndarray:
    clipped = np.clip(samples.astype(np.float64), -1.0, 1.0) + 1.0
    return (np.floor(clipped * 32767.5).astype(np.int32) - 32768).astype("<i2")


class Wavetable:
    """Waves of equal length stored end to end, with band-limited upsampled copies.

    ``interpolated_samples`` holds, for each octave, every wave filtered to
    ``2**octave`` harmonics and upsampled by ``quality``.
    """

    directory: ClassVar[str] = ""

    def __init__(self) -> None:
        self.samples = np.zeros(0, dtype=np.float32)
        self.wave_len = 0
        self.filename = ""
        self.quality = 0
        self.octaves = 0
        self.interpolated_samples = np.zeros(0, dtype=np.float32)
        self.loading = False

    @contextmanager
    def _loading(self) -> Iterator[None]:
        self.loading = True
        try:
            yield
        finally:
            self.loading = False

    @property
    def wave_count(self) -> int:
        if self.wave_len == 0:
            return 0
        return len(self.samples) // self.wave_len

    def at(self, wave_index: int, sample_index: int) -> float:
        return float(self.samples[self.wave_len * wave_index + sample_index])

    def interpolated_at(self, octave: int, wave_index: int, sample_index: int) -> float:
        index = (
            len(self.samples) * self.quality * octave
            + self.wave_len * self.quality * wave_index
            + sample_index
        )
        return float(self.interpolated_samples[index])

    def reset(self) -> None:
        """Load the built-in sine, triangle, sawtooth and square waves."""
        with self._loading():
            self.filename = "Basic.wav"
            self.wave_len = 1024
            n = self.wave_len
            p = np.arange(n, dtype=np.float32) / np.float32(n)
            sine = np.sin(np.float32(2.0 * math.pi) * p)
            triangle = np.where(p < 0.25, 4 * p, np.where(p < 0.75, 2 - 4 * p, 4 * p - 4))
            saw = np.where(p < 0.5, 2 * p, 2 * p - 2)
            square = np.where(p < 0.5, 1.0, -1.0)
            self.samples = np.concatenate([sine, triangle, saw, square]).astype(np.float32)
            self.interpolate()

    def set_quality(self, quality: int) -> None:
        if quality == self.quality:
            return
        self.quality = quality
        self.interpolate()

    def set_wave_len(self, wave_len: int) -> None:
        if wave_len == self.wave_len:
            return
        self.wave_len = wave_len
        self.interpolate()

    def interpolate(self) -> None:
        """Rebuild the band-limited, upsampled copies of every wave."""
        if self.quality == 0 or self.wave_len < 2:
            return
        count = self.wave_count
        if count == 0:
            return

        n = self.wave_len
        quality = self.quality
        m = n * quality
        total = len(self.samples)
        self.octaves = n.bit_length() - 2
        out = np.zeros(self.octaves * total * quality, dtype=np.float32)

        waves = self.samples[: count * n].astype(np.float64).reshape(count, n) / n
        spectra = np.fft.rfft(waves, axis=1)
        # The input's Nyquist bin lands in the output's Nyquist bin.
        nyquist = spectra[:, n // 2].real if n % 2 == 0 and m % 2 == 0 else None

        for octave in range(self.octaves):
            bins = 1 << octave
            spectrum = np.zeros((count, m // 2 + 1), dtype=complex)
            spectrum[:, : bins + 1] = spectra[:, : bins + 1]
            spectrum[:, 0] = spectra[:, 0].real
            if nyquist is not None:
                spectrum[:, m // 2] = nyquist
            filtered = np.fft.irfft(spectrum, m, axis=1) * m
            start = total * quality * octave
            out[start : start + count * m] = filtered.ravel()

        self.interpolated_samples = out

    def to_json(self) -> dict[str, Any]:
        return {"waveLen": self.wave_len, "filename": self.filename}

    def from_json(self, data: dict[str, Any]) -> None:
        if "waveLen" in data:
            value = data["waveLen"]
            is_int = isinstance(value, int) and not isinstance(value, bool)
            self.set_wave_len(value if is_int else 0)
        if "filename" in data and isinstance(data["filename"], str):
            self.filename = data["filename"]

    def load(self, path: str | os.PathLike[str]) -> None:
        """Load samples from a WAV file, or raw data named by its extension.

        An unreadable WAV file is ignored; a missing raw file raises OSError.
        """
        path = os.fspath(path)
        with self._loading():
            ext = os.path.splitext(path)[1].lower()
            if ext == ".wav":
                wav = _read_wav(path)
                if wav is None:
                    return
                if len(wav.samples) == 0 or len(wav.samples) >= MAX_SAMPLES:
                    return
                self.samples = wav.samples
                # A power-of-two sample rate gives the wave length.
                if wav.sample_rate & (wav.sample_rate - 1) == 0:
                    self.wave_len = wav.sample_rate
            else:
                self.samples = _decode_raw(ext, Path(path).read_bytes())
            self.interpolate()

    def load_path(self, path: str | os.PathLike[str] | None) -> None:
        """Load a chosen file and take its name; None means the choice was cancelled."""
        if not path:
            return
        path = os.fspath(path)
        Wavetable.directory = os.path.dirname(path)
        self.load(path)
        self.filename = os.path.basename(path)

    def save(self, path: str | os.PathLike[str]) -> bool:
        """Write the samples as 16-bit mono WAV at a rate equal to the wave length."""
        if len(self.samples) == 0:
            return False
        pcm = _f32_to_s16(self.samples)
        try:
            with wave.open(os.fspath(path), "wb") as writer:
                writer.setnchannels(1)
                writer.setsampwidth(2)
                writer.setframerate(self.wave_len)
                writer.writeframes(pcm.tobytes())
        except (OSError, wave.Error):
            return False
        return True

    def save_path(self, path: str | os.PathLike[str] | None) -> bool:
        """Save to a chosen path, adding a .wav extension when it is missing."""
        if not path:
            return False
        path = os.fspath(path)
        if os.path.splitext(path)[1] != ".wav":
            path += ".wav"
        Wavetable.directory = os.path.dirname(path)
        return self.save(path)