"""Load a recorder project directory into an immutable build snapshot."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List

from pydantic import ValidationError

from ..audio.types import ProjectSnapshot, Sentence, Session, Take
from ..errors import ProjectLoadError
from ..schemas import LogEvent, ProjectManifest

LOGGER = logging.getLogger("prompter.project_store")

MANIFEST_NAME = "project.json"


class ProjectStore:
    """Reads ``project.json``, the action log and every take's audio file."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    @property
    def manifest_path(self) -> Path:
        return self.root / MANIFEST_NAME

    def load_manifest(self) -> ProjectManifest:
        if not self.manifest_path.exists():
            raise ProjectLoadError(f"project manifest not found: {self.manifest_path}")
        try:
            return ProjectManifest.model_validate_json(self.manifest_path.read_text(encoding="utf-8"))
        except ValidationError as exc:
            raise ProjectLoadError(f"invalid project manifest {self.manifest_path}: {exc}") from exc

    def load_log(self, manifest: ProjectManifest) -> List[LogEvent]:
        path = self.root / manifest.log
        if not path.exists():
            LOGGER.warning("Action log %s missing; every take maps to its start sentence", path)
            return []
        events: List[LogEvent] = []
        for line_no, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
            if not line.strip():
                continue
            try:
                events.append(LogEvent.model_validate(json.loads(line)))
            except (json.JSONDecodeError, ValidationError) as exc:
                raise ProjectLoadError(f"{path}:{line_no}: invalid log entry: {exc}") from exc
        return events

    def load(self) -> ProjectSnapshot:
        manifest = self.load_manifest()
        sessions = []
        for session in manifest.sessions:
            takes = []
            for record in session.takes:
                audio_path = self.root / record.audio
                try:
                    blob = audio_path.read_bytes()
                except OSError as exc:
                    raise ProjectLoadError(f"cannot read take audio {audio_path}: {exc}") from exc
                takes.append(
                    Take(
                        sentence_index_at_start=record.idx,
                        started_at=record.started_at,
                        ended_at=record.ended_at,
                        session_id=session.id,
                        encoded_audio=blob,
                    )
                )
            started = session.start or (takes[0].started_at if takes else None)
            sessions.append(Session(id=session.id, started_at=started, takes=tuple(takes)))
        snapshot = ProjectSnapshot(
            sentences=tuple(Sentence(text=s.text, id=s.id) for s in manifest.sentences),
            sessions=tuple(sessions),
            log=tuple(self.load_log(manifest)),
            user_code=manifest.user_code,
            project_name=manifest.project_name,
        )
        LOGGER.info(
            "Loaded project %r: %d sentence(s), %d session(s), %d take(s), %d log event(s)",
            snapshot.project_name,
            len(snapshot.sentences),
            len(snapshot.sessions),
            snapshot.take_count,
            len(snapshot.log),
        )
        return snapshot


def load_project(root: Path) -> ProjectSnapshot:
    return ProjectStore(root).load()


__all__ = ["MANIFEST_NAME", "ProjectStore", "load_project"]
