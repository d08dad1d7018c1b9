import struct
import wave

import numpy as np
import pytest

from voltmodules.wavetable import Wavetable


@pytest.fixture
def basic():
    table = Wavetable()
    table.reset()
    return table


def _write_pcm16(path, rate, values, channels=1):
    with wave.open(str(path), "wb") as writer:
        writer.setnchannels(channels)
        writer.setsampwidth(2)
        writer.setframerate(rate)
        writer.writeframes(struct.pack(f"<{len(values)}h", *values))


def _write_float_wav(path, rate, values):
    payload = struct.pack(f"<{len(values)}f", *values)
    fmt = struct.pack("<HHIIHH", 3, 1, rate, rate * 4, 4, 32)
    body = (
        b"WAVE"
        + b"fmt "
        + struct.pack("<I", len(fmt))
        + fmt
        + b"data"
        + struct.pack("<I", len(payload))
        + payload
    )
    path.write_bytes(b"RIFF" + struct.pack("<I", len(body)) + body)


def test_reset_builds_basic_table(basic):
    assert basic.filename == "Basic.wav"
    assert basic.wave_len == 1024
    assert basic.wave_count == 4
    assert len(basic.samples) == 4 * 1024
    assert not basic.loading
    assert np.max(np.abs(basic.samples)) <= 1.0 + 1e-6


def test_reset_wave_shapes(basic):
    assert basic.at(0, 0) == pytest.approx(0.0, abs=1e-6)
    assert basic.at(1, 256) == pytest.approx(1.0)
    assert set(np.unique(basic.samples[3 * 1024 :])) == {-1.0, 1.0}
    assert basic.at(3, 0) == 1.0
    assert basic.at(3, 512) == -1.0


def test_no_interpolation_without_quality(basic):
    assert basic.quality == 0
    assert len(basic.interpolated_samples) == 0


def test_interpolation_layout(basic):
    basic.set_quality(8)
    assert basic.octaves == 9
    assert len(basic.interpolated_samples) == basic.octaves * len(basic.samples) * 8


def test_sine_survives_every_octave(basic):
    basic.set_quality(8)
    for octave in range(basic.octaves):
        for k in range(0, 1024, 64):
            assert basic.interpolated_at(octave, 0, 8 * k) == pytest.approx(basic.at(0, k), abs=1e-4)


def test_more_octaves_track_triangle_closer(basic):
    basic.set_quality(4)

    def error(octave):
        return max(abs(basic.interpolated_at(octave, 1, 4 * k) - basic.at(1, k)) for k in range(0, 1024, 16))

    assert error(basic.octaves - 1) < error(0)


def test_set_quality_same_value_keeps_data(basic):
    basic.set_quality(8)
    basic.interpolated_samples = np.zeros(0, dtype=np.float32)
    basic.set_quality(8)
    assert len(basic.interpolated_samples) == 0


def test_set_wave_len_changes_wave_count(basic):
    basic.set_wave_len(512)
    assert basic.wave_len == 512
    assert basic.wave_count == 8


def test_json_round_trip(basic):
    assert basic.to_json() == {"waveLen": 1024, "filename": "Basic.wav"}
    other = Wavetable()
    other.from_json(basic.to_json())
    assert other.wave_len == basic.wave_len
    assert other.filename == basic.filename


def test_from_json_ignores_missing_keys(basic):
    basic.from_json({})
    assert basic.wave_len == 1024
    assert basic.filename == "Basic.wav"


def test_save_and_load_round_trip(basic, tmp_path):
    path = tmp_path / "table.wav"
    assert basic.save(path)
    loaded = Wavetable()
    loaded.load(path)
    assert loaded.wave_len == basic.wave_len
    assert len(loaded.samples) == len(basic.samples)
    assert np.max(np.abs(loaded.samples - basic.samples)) < 2.0 / 32768.0


def test_save_without_samples_writes_nothing(tmp_path):
    path = tmp_path / "empty.wav"
    assert not Wavetable().save(path)
    assert not path.exists()


def test_save_path_appends_extension(basic, tmp_path):
    assert basic.save_path(tmp_path / "mytable")
    assert (tmp_path / "mytable.wav").exists()
    assert Wavetable.directory == str(tmp_path)


def test_save_path_cancelled(basic):
    assert basic.save_path(None) is False


@pytest.mark.parametrize(
    "ext, code, scale",
    [
        (".i8", "b", 128.0),
        (".s8", "b", 128.0),
        (".i16", "h", 32768.0),
        (".s16", "h", 32768.0),
        (".i32", "i", 2147483648.0),
        (".s32", "i", 2147483648.0),
        (".raw", "i", 2147483648.0),
    ],
)
def test_load_raw_integers(tmp_path, ext, code, scale):
    values = [0, 1, -2, 100, -100, 64, -64, 3]
    path = tmp_path / f"data{ext}"
    path.write_bytes(struct.pack(f"<{len(values)}{code}", *values))
    table = Wavetable()
    table.load(path)
    np.testing.assert_allclose(table.samples, np.array(values) / scale, rtol=1e-6)


def test_load_raw_float(tmp_path):
    values = [0.5, -0.25, 0.75, 1.0]
    path = tmp_path / "data.f32"
    path.write_bytes(struct.pack("<4f", *values))
    table = Wavetable()
    table.load(path)
    assert table.samples.tolist() == values


def test_load_raw_int24(tmp_path):
    values = [1, -1, 4096, -4096]
    raw = b"".join((v & 0xFFFFFF).to_bytes(3, "little") for v in values)
    path = tmp_path / "data.i24"
    path.write_bytes(raw)
    table = Wavetable()
    table.load(path)
    np.testing.assert_allclose(table.samples, np.array(values) / 8388608.0, rtol=1e-6)


def test_missing_raw_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        Wavetable().load(tmp_path / "absent.i16")


def test_missing_wav_is_ignored(basic, tmp_path):
    before = basic.samples.copy()
    basic.load(tmp_path / "absent.wav")
    assert np.array_equal(basic.samples, before)
    assert not basic.loading


def test_wav_with_other_rate_keeps_wave_len(basic, tmp_path):
    path = tmp_path / "other.wav"
    _write_pcm16(path, 44100, [0, 16384, -16384, 32767])
    basic.load(path)
    assert basic.wave_len == 1024
    assert len(basic.samples) == 4


def test_float_wav_sets_wave_len(tmp_path):
    values = [0.5, -0.25, 0.75, 1.0]
    path = tmp_path / "float.wav"
    _write_float_wav(path, 256, values)
    table = Wavetable()
    table.load(path)
    assert table.wave_len == 256
    assert table.samples.tolist() == values


def test_stereo_wav_is_interleaved(tmp_path):
    values = [0, 1, 2, 3, 4, 5]
    path = tmp_path / "stereo.wav"
    _write_pcm16(path, 64, values, channels=2)
    table = Wavetable()
    table.load(path)
    assert len(table.samples) == len(values)
    np.testing.assert_allclose(table.samples, np.array(values) / 32768.0, rtol=1e-6)


def test_empty_wav_is_ignored(basic, tmp_path):
    path = tmp_path / "empty.wav"
    _write_pcm16(path, 512, [])
    basic.load(path)
    assert basic.wave_len == 1024
    assert len(basic.samples) == 4 * 1024


def test_load_path_takes_filename(basic, tmp_path):
    source = tmp_path / "table.wav"
    basic.save(source)
    other = Wavetable()
    other.load_path(source)
    assert other.filename == "table.wav"
    assert Wavetable.directory == str(tmp_path)
    assert other.wave_count == 4
    assert not other.loading


def test_load_path_cancelled(basic):
    basic.load_path(None)
    assert basic.filename == "Basic.wav"


def test_load_reinterpolates(basic, tmp_path):
    basic.set_quality(2)
    path = tmp_path / "short.wav"
    _write_pcm16(path, 16, list(range(32)))
    basic.load(path)
    assert basic.wave_len == 16
    assert len(basic.interpolated_samples) == basic.octaves * len(basic.samples) * 2