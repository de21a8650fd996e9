"""Pytest configuration helpers."""

from __future__ import annotations

import io
import math
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import numpy as np
import pytest


def _ensure_repo_on_path() -> None:
    """Allow tests to import from repo modules without setting PYTHONPATH."""
    repo_root = Path(__file__).resolve().parents[1]
    path_str = str(repo_root)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)


_ensure_repo_on_path()

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture()
def at():
    """Datetime ``ms`` milliseconds after a fixed base instant."""

    def _at(ms: float) -> datetime:
        return BASE_TIME + timedelta(milliseconds=ms)

    return _at


@pytest.fixture()
def iso(at):
    """ISO-8601 string in the recorder's ``...Z`` form."""

    def _iso(ms: float) -> str:
        return at(ms).isoformat().replace("+00:00", "Z")

    return _iso


@pytest.fixture()
def wav_blob():
    """Encode a sine tone (or given samples) as a float WAV blob via soundfile."""
    import soundfile as sf

    def _wav_blob(
        duration_s: float = 1.0,
        sample_rate: int = 16_000,
        *,
        samples: np.ndarray | None = None,
        freq: float = 220.0,
        amplitude: float = 0.5,
    ) -> bytes:
        if samples is None:
            t = np.arange(int(round(duration_s * sample_rate))) / sample_rate
            samples = (amplitude * np.sin(2 * math.pi * freq * t)).astype(np.float32)
        buffer = io.BytesIO()
        sf.write(buffer, samples, sample_rate, format="WAV", subtype="FLOAT")
        return buffer.getvalue()

    return _wav_blob
