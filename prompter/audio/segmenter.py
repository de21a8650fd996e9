"""Split a take into per-sentence segments by replaying navigation events."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from functools import reduce
from typing import Iterable, Sequence

from ..metrics import DATASET_SEGMENT_COUNTER
from ..schemas import LogEvent
from .types import Boundary, Segment, Take

LOGGER = logging.getLogger("prompter.segmenter")

NAV_NEXT = "nav_next"
NAV_PREV = "nav_prev"
RECORD_START = "record_start"
NAVIGATION_ACTIONS = frozenset({NAV_NEXT, NAV_PREV})


@dataclass(slots=True, frozen=True)
class _CursorState:
    cursor: int
    boundaries: tuple[Boundary, ...]


def clamp_index(index: int, sentence_count: int) -> int:
    upper = max(0, sentence_count - 1)
    return max(0, min(upper, index))


def events_in_window(take: Take, events: Iterable[LogEvent]) -> list[LogEvent]:
    """Events of the take's session stamped inside ``[started_at, ended_at]``.

    ``sorted`` is stable, so equal timestamps keep their log order.
    """
    start_ms, end_ms = take.start_ms, take.end_ms
    window = [
        event
        for event in events
        if event.session_id == take.session_id
        and event.ts
        and start_ms <= event.time_ms <= end_ms
    ]
    return sorted(window, key=lambda event: event.time_ms)


def initial_index(take: Take, window: Sequence[LogEvent]) -> int:
    for event in window:
        if event.action == RECORD_START:
            if event.index is not None:
                return event.index
            break
    return take.sentence_index_at_start


def reconstruct_boundaries(
    take: Take,
    events: Iterable[LogEvent],
    sentence_count: int,
    *,
    warn_on_clamp: bool = True,
) -> tuple[Boundary, ...]:
    """Boundaries spanning the take: its start, every navigation, its end."""
    window = events_in_window(take, events)
    requested = initial_index(take, window)
    cursor = clamp_index(requested, sentence_count)
    if warn_on_clamp and cursor != requested:
        LOGGER.warning(
            "Take %s@%s starts on sentence %d outside [0, %d]; clamped to %d",
            take.session_id,
            take.started_at.isoformat(),
            requested,
            max(0, sentence_count - 1),
            cursor,
        )

    def step(state: _CursorState, event: LogEvent) -> _CursorState:
        if event.action not in NAVIGATION_ACTIONS:
            return state
        delta = 1 if event.action == NAV_NEXT else -1
        moved = clamp_index(state.cursor + delta, sentence_count)
        return _CursorState(moved, state.boundaries + (Boundary(event.time_ms, moved),))

    seed = _CursorState(cursor, (Boundary(take.start_ms, cursor),))
    final = reduce(step, window, seed)
    return final.boundaries + (Boundary(take.end_ms, final.cursor),)


def extract_segments(
    take: Take,
    boundaries: Sequence[Boundary],
    total_samples: int,
) -> list[Segment]:
    """Map consecutive boundary pairs onto sample ranges of the decoded take.

    Pairs that collapse to an empty range are dropped.
    """
    start_ms = take.start_ms
    duration_ms = max(1.0, take.end_ms - start_ms)

    def to_sample(time_ms: float) -> int:
        sample = math.floor((time_ms - start_ms) / duration_ms * total_samples + 0.5)
        return max(0, min(total_samples, sample))

    segments: list[Segment] = []
    for current, following in zip(boundaries, boundaries[1:]):
        s0 = to_sample(current.time_ms)
        s1 = to_sample(following.time_ms)
        if s1 <= s0:
            LOGGER.debug("Dropping empty range at %.1f ms (sentence %d)", current.time_ms, current.sentence_index)
            DATASET_SEGMENT_COUNTER.labels(outcome="skipped").inc()
            continue
        segments.append(
            Segment(
                sample_start=s0,
                sample_end=s1,
                sentence_index=current.sentence_index,
                session_id=take.session_id,
            )
        )
    DATASET_SEGMENT_COUNTER.labels(outcome="emitted").inc(len(segments))
    return segments


def segment_take(
    take: Take,
    total_samples: int,
    events: Iterable[LogEvent],
    sentence_count: int,
    *,
    warn_on_clamp: bool = True,
) -> list[Segment]:
    boundaries = reconstruct_boundaries(take, events, sentence_count, warn_on_clamp=warn_on_clamp)
    return extract_segments(take, boundaries, total_samples)


__all__ = [
    "NAVIGATION_ACTIONS",
    "clamp_index",
    "events_in_window",
    "extract_segments",
    "initial_index",
    "reconstruct_boundaries",
    "segment_take",
]
