"""Turn a project snapshot into a dataset archive."""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import numpy as np

from ..audio.assembler import MasterAssembly, assemble_master, chronological_takes
from ..audio.decoder import DEFAULT_DECODERS, AudioDecoder, decode_to_mono
from ..audio.types import ProjectSnapshot, Take
from ..audio.wav_encoder import encode_wav
from ..errors import DecodeError, NoRecordingsError
from ..metrics import DATASET_BUILD_COUNTER, DATASET_BUILD_DURATION
from ..settings import DatasetSettings
from .packager import archive_filename, package_dataset, write_archive

LOGGER = logging.getLogger("prompter.builder")


class BuildStage(enum.IntEnum):
    IDLE = 0
    DECODING = 1
    SEGMENTING = 2
    CONCATENATING = 3
    ENCODING = 4
    PACKAGING = 5
    ARCHIVING = 6
    DONE = 7


@dataclass(slots=True, frozen=True)
class BuildProgress:
    stage: BuildStage
    percent: int
    message: str


ProgressCallback = Callable[[BuildProgress], None]


@dataclass(slots=True)
class DatasetResult:
    archive: bytes
    assembly: MasterAssembly
    sentence_count: int
    recorded_indices: List[int] = field(default_factory=list)
    missing_indices: List[int] = field(default_factory=list)

    @property
    def clip_count(self) -> int:
        return len(self.assembly.segments)

    @property
    def all_recorded(self) -> bool:
        return self.sentence_count > 0 and not self.missing_indices


class _StageTracker:
    """Forward-only stage machine that forwards progress to a callback."""

    def __init__(self, callback: Optional[ProgressCallback]) -> None:
        self.callback = callback
        self.stage = BuildStage.IDLE

    def report(self, stage: BuildStage, percent: int, message: str) -> None:
        if stage < self.stage:
            raise RuntimeError(f"build stage cannot move back from {self.stage.name} to {stage.name}")
        if stage != self.stage:
            LOGGER.info("Build stage %s -> %s", self.stage.name, stage.name)
        self.stage = stage
        if self.callback:
            self.callback(BuildProgress(stage=stage, percent=max(0, min(100, percent)), message=message))


class DatasetBuilder:
    """Decode, segment, concatenate and package every take of a snapshot."""

    def __init__(
        self,
        settings: DatasetSettings,
        *,
        decoders: Sequence[AudioDecoder] = DEFAULT_DECODERS,
    ) -> None:
        self.settings = settings
        self.decoders = tuple(decoders)

    def build(self, snapshot: ProjectSnapshot, progress: Optional[ProgressCallback] = None) -> DatasetResult:
        if snapshot.take_count == 0:
            DATASET_BUILD_COUNTER.labels(status="refused").inc()
            raise NoRecordingsError("No recordings yet - record at least one take to build a dataset.")

        start_time = time.perf_counter()
        try:
            result = self._run(snapshot, _StageTracker(progress))
        except Exception:
            DATASET_BUILD_COUNTER.labels(status="error").inc()
            DATASET_BUILD_DURATION.observe(time.perf_counter() - start_time)
            LOGGER.error("Dataset build for %r aborted", snapshot.project_name, exc_info=True)
            raise
        DATASET_BUILD_COUNTER.labels(status="success").inc()
        DATASET_BUILD_DURATION.observe(time.perf_counter() - start_time)
        LOGGER.info(
            "Built dataset %r: %d clip(s), %.3f s of audio, %d/%d sentence(s) recorded",
            snapshot.project_name,
            result.clip_count,
            result.assembly.total_samples / result.assembly.sample_rate,
            len(result.recorded_indices),
            result.sentence_count,
        )
        return result

    def project_name(self, snapshot: ProjectSnapshot) -> str:
        return snapshot.project_name or self.settings.project_name

    def build_to_path(
        self,
        snapshot: ProjectSnapshot,
        path: Path | None = None,
        progress: Optional[ProgressCallback] = None,
    ) -> tuple[Path, DatasetResult]:
        """Build, then atomically replace the archive at ``path``."""
        result = self.build(snapshot, progress)
        if path is None:
            name = archive_filename(self.project_name(snapshot), snapshot.user_code or self.settings.user_code)
            path = Path(self.settings.output_dir) / name
        return write_archive(result.archive, Path(path)), result

    def _run(self, snapshot: ProjectSnapshot, tracker: _StageTracker) -> DatasetResult:
        rate = self.settings.target_sample_rate
        user_code = snapshot.user_code or self.settings.user_code
        tracker.report(BuildStage.DECODING, 2, "Preparing audio...")

        takes = chronological_takes(snapshot.sessions)
        decoded = self._decode_all(takes, rate, tracker)

        tracker.report(BuildStage.SEGMENTING, 20, "Segmenting by navigation events...")
        assembly = assemble_master(
            decoded,
            snapshot.log,
            len(snapshot.sentences),
            rate,
            warn_on_clamp=self.settings.warn_on_clamp,
            on_take=lambda i, n: tracker.report(
                BuildStage.SEGMENTING, 20 + round(20 * i / max(1, n)), "Segmenting by navigation events..."
            ),
        )

        tracker.report(BuildStage.CONCATENATING, 40, "Concatenating master audio...")
        LOGGER.debug("Master track holds %d samples from %d segment(s)", assembly.total_samples, len(assembly.segments))

        tracker.report(BuildStage.ENCODING, 40, "Encoding master audio...")
        master_wav = encode_wav(assembly.master, rate)

        tracker.report(BuildStage.PACKAGING, 40, "Packaging clips...")
        archive = package_dataset(
            assembly,
            snapshot.log,
            snapshot.sentences,
            user_code,
            master_wav=master_wav,
            on_clip=lambda i, n: tracker.report(
                BuildStage.PACKAGING, 40 + round(40 * i / max(1, n)), f"Packaging clips {i}/{n}..."
            ),
            on_archive=lambda: tracker.report(BuildStage.ARCHIVING, 90, "Creating ZIP archive..."),
        )

        recorded, missing = coverage(assembly, len(snapshot.sentences))
        result = DatasetResult(
            archive=archive,
            assembly=assembly,
            sentence_count=len(snapshot.sentences),
            recorded_indices=recorded,
            missing_indices=missing,
        )
        tracker.report(BuildStage.DONE, 100, "Done. Your dataset is ready to download.")
        return result

    def _decode_all(
        self, takes: Sequence[Take], rate: int, tracker: _StageTracker
    ) -> list[tuple[Take, np.ndarray]]:
        decoded: list[tuple[Take, np.ndarray]] = []
        total = len(takes)
        for position, take in enumerate(takes, start=1):
            tracker.report(BuildStage.DECODING, max(2, round(10 * (position - 1) / total)), f"Decoding take {position}/{total}...")
            try:
                audio = decode_to_mono(take.encoded_audio, rate, decoders=self.decoders)
            except DecodeError as exc:
                raise DecodeError(
                    f"take {position}/{total} of session {take.session_id} "
                    f"started {take.started_at.isoformat()}: {exc}"
                ) from exc
            LOGGER.debug("Decoded take %d/%d: %d samples @ %d Hz", position, total, len(audio.pcm), audio.sample_rate)
            decoded.append((take, audio.pcm))
            tracker.report(BuildStage.DECODING, max(2, round(10 * position / total)), f"Decoding take {position}/{total}...")
        return decoded


def coverage(assembly: MasterAssembly, sentence_count: int) -> tuple[list[int], list[int]]:
    """Sentence indices with at least one clip, and those with none."""
    recorded = sorted({placed.sentence_index for placed in assembly.segments})
    seen = set(recorded)
    missing = [index for index in range(sentence_count) if index not in seen]
    return recorded, missing


__all__ = [
    "BuildProgress",
    "BuildStage",
    "DatasetBuilder",
    "DatasetResult",
    "coverage",
]
