"""Concatenate per-sentence segments of every take into one master track."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Sequence

import numpy as np

from ..schemas import LogEvent
from .segmenter import segment_take
from .types import Segment, Session, Take

LOGGER = logging.getLogger("prompter.assembler")


@dataclass(slots=True, frozen=True)
class PlacedSegment:
    """A segment, its PCM and where that PCM sits in the master track."""

    segment: Segment
    pcm: np.ndarray
    offset_start: int
    offset_end: int

    @property
    def sentence_index(self) -> int:
        return self.segment.sentence_index

    @property
    def session_id(self) -> str:
        return self.segment.session_id


@dataclass(slots=True)
class MasterAssembly:
    master: np.ndarray
    segments: List[PlacedSegment]
    sample_rate: int

    @property
    def total_samples(self) -> int:
        return int(self.master.size)


def chronological_takes(sessions: Iterable[Session]) -> list[Take]:
    """Every take of every session, ordered by start time (stable)."""
    takes = [take for session in sessions for take in session.takes]
    return sorted(takes, key=lambda take: take.start_ms)


def assemble_master(
    decoded_takes: Sequence[tuple[Take, np.ndarray]],
    events: Sequence[LogEvent],
    sentence_count: int,
    sample_rate: int,
    *,
    warn_on_clamp: bool = True,
    on_take: Callable[[int, int], None] | None = None,
) -> MasterAssembly:
    """Segment each decoded take in order and append the slices to the master.

    ``decoded_takes`` must already be in chronological order; no reordering by
    sentence index happens here.
    """
    placed: list[PlacedSegment] = []
    chunks: list[np.ndarray] = []
    offset = 0
    total = len(decoded_takes)
    for position, (take, pcm) in enumerate(decoded_takes, start=1):
        segments = segment_take(take, len(pcm), events, sentence_count, warn_on_clamp=warn_on_clamp)
        LOGGER.debug(
            "Take %d/%d (%s) -> %d segment(s)", position, total, take.session_id, len(segments)
        )
        for segment in segments:
            piece = pcm[segment.sample_start : segment.sample_end]
            placed.append(
                PlacedSegment(
                    segment=segment,
                    pcm=piece,
                    offset_start=offset,
                    offset_end=offset + len(piece),
                )
            )
            chunks.append(piece)
            offset += len(piece)
        if on_take:
            on_take(position, total)
    master = np.concatenate(chunks).astype(np.float32, copy=False) if chunks else np.zeros((0,), dtype=np.float32)
    return MasterAssembly(master=master, segments=placed, sample_rate=int(sample_rate))


__all__ = ["MasterAssembly", "PlacedSegment", "assemble_master", "chronological_takes"]
