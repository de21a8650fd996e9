"""Decode recorded take blobs into mono float PCM at a fixed rate."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

import numpy as np
import soundfile as sf
from pydub import AudioSegment

from ..errors import DecodeError

LOGGER = logging.getLogger("prompter.decoder")


@dataclass(slots=True)
class DecodedAudio:
    pcm: np.ndarray
    sample_rate: int

    @property
    def duration_sec(self) -> float:
        return len(self.pcm) / float(self.sample_rate) if self.sample_rate else 0.0


class AudioDecoder(Protocol):
    """One container family; returns frames shaped (samples, channels)."""

    def decode(self, blob: bytes) -> tuple[np.ndarray, int]:
        ...


class SoundFileDecoder:
    """Decode any container libsndfile understands (WAV, FLAC, OGG, ...)."""

    def decode(self, blob: bytes) -> tuple[np.ndarray, int]:
        try:
            audio, sample_rate = sf.read(io.BytesIO(blob), always_2d=True, dtype="float32")
        except (RuntimeError, ValueError) as exc:
            raise DecodeError(f"unsupported or corrupt audio container: {exc}") from exc
        return audio, int(sample_rate)


class PydubDecoder:
    """Decode WebM/Opus, MP4 and the other ffmpeg containers through pydub."""

    def decode(self, blob: bytes) -> tuple[np.ndarray, int]:
        try:
            segment = AudioSegment.from_file(io.BytesIO(blob))
        except Exception as exc:
            raise DecodeError(f"ffmpeg could not decode audio blob: {exc}") from exc
        return _segment_frames(segment), int(segment.frame_rate)


def _segment_frames(segment: AudioSegment) -> np.ndarray:
    dtype = {1: np.int8, 2: np.int16, 4: np.int32}.get(segment.sample_width)
    if dtype is None:
        raise DecodeError(f"unsupported sample width: {segment.sample_width} bytes")
    samples = np.frombuffer(segment.raw_data, dtype=dtype).astype(np.float32)
    samples /= float(1 << (8 * segment.sample_width - 1))
    return samples.reshape(-1, segment.channels)


# libsndfile first; ffmpeg only for what it rejects.
DEFAULT_DECODERS: tuple[AudioDecoder, ...] = (SoundFileDecoder(), PydubDecoder())


def decode_to_mono(
    blob: bytes,
    target_sample_rate: int | None = None,
    *,
    decoders: Sequence[AudioDecoder] = DEFAULT_DECODERS,
) -> DecodedAudio:
    """Decode ``blob``, average its channels and resample when asked.

    Each decoder is tried in order; the first one that accepts the blob
    wins. ``DecodeError`` is raised when none does.
    """
    if not blob:
        raise DecodeError("empty audio blob")
    failures: list[str] = []
    for decoder in decoders:
        try:
            frames, native_rate = decoder.decode(blob)
        except DecodeError as exc:
            failures.append(str(exc))
            continue
        mono = _average_channels(frames)
        if not target_sample_rate or target_sample_rate == native_rate:
            return DecodedAudio(pcm=mono, sample_rate=native_rate)
        LOGGER.debug("Resampling %d samples %d Hz -> %d Hz", len(mono), native_rate, target_sample_rate)
        return DecodedAudio(
            pcm=resample_linear(mono, native_rate, target_sample_rate),
            sample_rate=int(target_sample_rate),
        )
    raise DecodeError("; ".join(failures) or "no decoder available")


def resample_linear(samples: np.ndarray, source_sr: int, target_sr: int) -> np.ndarray:
    """Linear interpolation onto a grid of ``round(n * target / source)`` points."""
    if source_sr == target_sr or samples.size == 0:
        return samples.astype(np.float32, copy=False)
    n_out = int(round(samples.size * (target_sr / source_sr)))
    if n_out <= 0:
        return np.zeros((0,), dtype=np.float32)
    t_in = np.arange(samples.size, dtype=np.float64) / source_sr
    t_out = np.arange(n_out, dtype=np.float64) / target_sr
    return np.interp(t_out, t_in, samples).astype(np.float32)


def _average_channels(frames: np.ndarray) -> np.ndarray:
    data = np.asarray(frames, dtype=np.float32)
    if data.ndim == 1:
        return data
    if data.shape[1] == 1:
        return data[:, 0].copy()
    return data.mean(axis=1).astype(np.float32)


__all__ = [
    "DEFAULT_DECODERS",
    "AudioDecoder",
    "DecodedAudio",
    "PydubDecoder",
    "SoundFileDecoder",
    "decode_to_mono",
    "resample_linear",
]
