"""Canonical 16-bit mono PCM WAV serialisation."""

from __future__ import annotations

import io

import numpy as np
import soundfile as sf

WAV_HEADER_BYTES = 44


def quantize_pcm16(samples: np.ndarray) -> np.ndarray:
    """Clamp to [-1, 1] and scale negatives by 32768, the rest by 32767."""
    data = np.clip(np.nan_to_num(np.asarray(samples, dtype=np.float64)), -1.0, 1.0)
    scaled = np.where(data < 0, data * 32768.0, data * 32767.0)
    return np.clip(np.rint(scaled), -32768, 32767).astype(np.int16)


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """Return a 44-byte-header RIFF/WAVE file holding ``samples`` as PCM_16."""
    buffer = io.BytesIO()
    # int16 input is written as-is, so the quantization above is what lands on disk.
    sf.write(buffer, quantize_pcm16(samples), int(sample_rate), format="WAV", subtype="PCM_16")
    return buffer.getvalue()


__all__ = ["WAV_HEADER_BYTES", "encode_wav", "quantize_pcm16"]
