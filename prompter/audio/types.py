"""Dataclasses shared across audio helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Tuple

if TYPE_CHECKING:
    from ..schemas import LogEvent


@dataclass(slots=True, frozen=True)
class Sentence:
    """One prompt of the script; its position in the list is the join key."""

    text: str
    id: str | None = None


@dataclass(slots=True, frozen=True)
class Take:
    """One uninterrupted recording captured by the recorder."""

    sentence_index_at_start: int
    started_at: datetime
    ended_at: datetime
    session_id: str
    encoded_audio: bytes = field(repr=False)

    @property
    def start_ms(self) -> float:
        return to_epoch_ms(self.started_at)

    @property
    def end_ms(self) -> float:
        return to_epoch_ms(self.ended_at)


@dataclass(slots=True, frozen=True)
class Session:
    """Takes recorded under one recording context."""

    id: str
    started_at: datetime | None
    takes: Tuple[Take, ...] = ()


@dataclass(slots=True, frozen=True)
class Boundary:
    """Instant (epoch milliseconds) at which the displayed sentence changed."""

    time_ms: float
    sentence_index: int


@dataclass(slots=True, frozen=True)
class Segment:
    """Sample range of one take's PCM attributed to one sentence."""

    sample_start: int
    sample_end: int
    sentence_index: int
    session_id: str

    @property
    def length(self) -> int:
        return self.sample_end - self.sample_start


def to_epoch_ms(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp() * 1000.0


def parse_iso(value: str) -> datetime:
    normalized = value.replace("Z", "+00:00")
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(slots=True, frozen=True)
class ProjectSnapshot:
    """Read-only view of sentences, sessions and the action log for one build."""

    sentences: Tuple[Sentence, ...]
    sessions: Tuple[Session, ...]
    log: Tuple[LogEvent, ...]
    user_code: str = ""
    project_name: str = ""

    @property
    def take_count(self) -> int:
        return sum(len(session.takes) for session in self.sessions)
