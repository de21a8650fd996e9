import io
import shutil

import numpy as np
import pytest
import soundfile as sf
from pydub import AudioSegment
from pydub.exceptions import CouldntEncodeError

from prompter.audio import decoder
from prompter.audio.decoder import (
    DEFAULT_DECODERS,
    PydubDecoder,
    SoundFileDecoder,
    decode_to_mono,
    resample_linear,
)
from prompter.errors import DecodeError


def _stereo_blob(left: float, right: float, frames: int, sample_rate: int) -> bytes:
    data = np.column_stack([np.full(frames, left), np.full(frames, right)]).astype(np.float32)
    buffer = io.BytesIO()
    sf.write(buffer, data, sample_rate, format="WAV", subtype="FLOAT")
    return buffer.getvalue()


def test_channels_are_averaged_with_equal_weight():
    decoded = decode_to_mono(_stereo_blob(0.5, 0.1, 200, 8_000))
    assert decoded.sample_rate == 8_000
    assert decoded.pcm.ndim == 1
    assert np.allclose(decoded.pcm, 0.3, atol=1e-6)


def test_native_rate_is_kept_without_target(wav_blob):
    decoded = decode_to_mono(wav_blob(0.5, 16_000))
    assert decoded.sample_rate == 16_000
    assert len(decoded.pcm) == 8_000


def test_resampling_preserves_duration(wav_blob):
    decoded = decode_to_mono(wav_blob(0.25, 16_000), 48_000)
    assert decoded.sample_rate == 48_000
    assert len(decoded.pcm) == 12_000
    assert decoded.duration_sec == pytest.approx(0.25)


def test_resample_length_is_rounded():
    samples = np.linspace(-1, 1, 441, dtype=np.float32)
    assert len(resample_linear(samples, 44_100, 48_000)) == 480
    assert len(resample_linear(samples, 44_100, 16_000)) == 160


def test_resample_keeps_constant_signal():
    samples = np.full(1000, 0.25, dtype=np.float32)
    out = resample_linear(samples, 8_000, 12_000)
    assert np.allclose(out, 0.25)


@pytest.mark.parametrize("blob", [b"not audio at all", b"RIFF\x00\x00\x00\x00WAVE"])
def test_invalid_container_raises_decode_error(blob):
    with pytest.raises(DecodeError):
        decode_to_mono(blob, 48_000)


def test_empty_blob_raises_decode_error():
    with pytest.raises(DecodeError):
        decode_to_mono(b"")


def test_later_decoder_is_tried_when_first_rejects(wav_blob):
    calls = []

    class RejectingDecoder:
        def decode(self, blob):
            calls.append(len(blob))
            raise DecodeError("not my container")

    decoded = decode_to_mono(wav_blob(0.1, 8_000), decoders=(RejectingDecoder(), SoundFileDecoder()))
    assert calls
    assert len(decoded.pcm) == 800


def test_all_decoders_failing_reports_each_reason():
    class RejectingDecoder:
        def decode(self, blob):
            raise DecodeError("nope")

    with pytest.raises(DecodeError, match="nope"):
        decode_to_mono(b"xyz", decoders=(RejectingDecoder(),))


# First bytes of an EBML (WebM/Matroska) stream.
WEBM_MAGIC = b"\x1a\x45\xdf\xa3" + b"\x00" * 60


def test_default_decoders_fall_back_to_ffmpeg():
    assert [type(d) for d in DEFAULT_DECODERS] == [SoundFileDecoder, PydubDecoder]


def test_containers_libsndfile_rejects_go_through_pydub(monkeypatch):
    frames = np.column_stack([np.full(100, 16384), np.zeros(100)]).astype("<i2")
    stereo = AudioSegment(data=frames.tobytes(), sample_width=2, frame_rate=8_000, channels=2)
    seen = []

    def fake_from_file(handle):
        seen.append(handle.read())
        return stereo

    monkeypatch.setattr(decoder.AudioSegment, "from_file", fake_from_file)

    decoded = decode_to_mono(WEBM_MAGIC, 16_000)

    assert seen == [WEBM_MAGIC]
    assert decoded.sample_rate == 16_000
    assert len(decoded.pcm) == 200
    assert np.allclose(decoded.pcm, 0.25)


def test_pydub_failure_becomes_decode_error(monkeypatch):
    def broken(handle):
        raise OSError("ffmpeg exited with code 1")

    monkeypatch.setattr(decoder.AudioSegment, "from_file", broken)

    with pytest.raises(DecodeError, match="ffmpeg exited"):
        PydubDecoder().decode(WEBM_MAGIC)


@pytest.mark.skipif(shutil.which("ffmpeg") is None, reason="ffmpeg not installed")
def test_webm_opus_take_is_decoded():
    rate = 48_000
    t = np.arange(rate // 2) / rate
    tone = (0.5 * np.sin(2 * np.pi * 440 * t) * 32767).astype("<i2")
    source = AudioSegment(data=tone.tobytes(), sample_width=2, frame_rate=rate, channels=1)
    buffer = io.BytesIO()
    try:
        source.export(buffer, format="webm", codec="libopus")
    except CouldntEncodeError:
        pytest.skip("ffmpeg built without libopus")

    decoded = decode_to_mono(buffer.getvalue(), rate)

    assert decoded.sample_rate == rate
    assert abs(len(decoded.pcm) - rate // 2) < rate // 20
    assert 0.3 < np.max(np.abs(decoded.pcm)) < 0.7
