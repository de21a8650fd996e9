"""Write the master track, clips and metadata tables into a ZIP archive."""

from __future__ import annotations

import io
import json
import logging
import os
import tempfile
import zipfile
from pathlib import Path
from typing import Callable, Iterable, Sequence

from ..audio.assembler import MasterAssembly
from ..audio.types import Sentence
from ..audio.wav_encoder import encode_wav
from ..schemas import LogEvent

LOGGER = logging.getLogger("prompter.packager")

MASTER_PATH = "audio/all_sessions.wav"
CLIPS_DIR = "audio/clips"
LOG_PATH = "log.jsonl"
EVENTS_PATH = "events.csv"
METADATA_PATH = "metadata.csv"

EVENTS_HEADER = ("ts", "action", "index", "session_id", "user_code")
EXPORTED_ACTIONS = frozenset({"nav_next", "nav_prev", "record_start", "record_stop", "session_started"})
METADATA_HEADER = (
    "file",
    "sentence_index",
    "text",
    "id",
    "session_id",
    "user_code",
    "duration_sec",
    "offset_start_sec",
    "offset_end_sec",
)

# Fixed entry timestamp so identical inputs give identical archive bytes.
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


def clip_filename(sequence: int, sentence_index: int) -> str:
    """``sequence`` is 1-based; ``sentence_index`` is the 0-based prompt index."""
    return f"{CLIPS_DIR}/{sequence:04d}_sent{sentence_index + 1:04d}.wav"


def archive_filename(project_name: str | None, user_code: str) -> str:
    return f"{project_name or 'project'}_{user_code}_dataset.zip"


def log_filename(project_name: str | None, user_code: str) -> str:
    return f"{project_name or 'project'}_{user_code}_log.jsonl"


def render_log_jsonl(events: Iterable[LogEvent]) -> str:
    return "\n".join(event.to_json() for event in events)


def render_events_csv(events: Iterable[LogEvent], user_code: str) -> str:
    rows = [",".join(EVENTS_HEADER)]
    for event in events:
        if event.action not in EXPORTED_ACTIONS:
            continue
        rows.append(
            ",".join(
                [
                    event.ts or "",
                    event.action,
                    "" if event.index is None else str(event.index),
                    event.session_id or "",
                    user_code,
                ]
            )
        )
    return "\n".join(rows)


def _seconds(samples: int, sample_rate: int) -> str:
    return f"{samples / sample_rate:.3f}"


def _json_field(value: object) -> str:
    return json.dumps(value, ensure_ascii=False)


def render_metadata_csv(
    assembly: MasterAssembly,
    sentences: Sequence[Sentence],
    user_code: str,
) -> str:
    rate = assembly.sample_rate
    rows = [",".join(METADATA_HEADER)]
    for sequence, placed in enumerate(assembly.segments, start=1):
        index = placed.sentence_index
        if 0 <= index < len(sentences):
            sentence = sentences[index]
            text, sentence_id = sentence.text or "", sentence.id or ""
        else:
            LOGGER.warning("Clip %d refers to sentence %d which is not in the script", sequence, index)
            text, sentence_id = "", ""
        rows.append(
            ",".join(
                [
                    clip_filename(sequence, index),
                    str(index),
                    _json_field(text),
                    _json_field(sentence_id),
                    placed.session_id,
                    user_code,
                    _seconds(len(placed.pcm), rate),
                    _seconds(placed.offset_start, rate),
                    _seconds(placed.offset_end, rate),
                ]
            )
        )
    return "\n".join(rows)


def _add_dir(archive: zipfile.ZipFile, name: str) -> None:
    info = zipfile.ZipInfo(name.rstrip("/") + "/", date_time=_ZIP_EPOCH)
    info.external_attr = (0o40755 << 16) | 0x10
    archive.writestr(info, b"")


def _add_file(archive: zipfile.ZipFile, name: str, payload: bytes | str) -> None:
    info = zipfile.ZipInfo(name, date_time=_ZIP_EPOCH)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = 0o644 << 16
    archive.writestr(info, payload)


def package_dataset(
    assembly: MasterAssembly,
    events: Sequence[LogEvent],
    sentences: Sequence[Sentence],
    user_code: str,
    *,
    master_wav: bytes | None = None,
    on_clip: Callable[[int, int], None] | None = None,
    on_archive: Callable[[], None] | None = None,
) -> bytes:
    """Return the archive bytes; nothing touches the filesystem here.

    ``on_archive`` fires once every clip is packed, before the tables and
    the central directory are written.
    """
    if master_wav is None:
        master_wav = encode_wav(assembly.master, assembly.sample_rate)
    buffer = io.BytesIO()
    total = len(assembly.segments)
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        _add_dir(archive, "audio")
        _add_dir(archive, CLIPS_DIR)
        _add_file(archive, MASTER_PATH, master_wav)
        for sequence, placed in enumerate(assembly.segments, start=1):
            name = clip_filename(sequence, placed.sentence_index)
            _add_file(archive, name, encode_wav(placed.pcm, assembly.sample_rate))
            LOGGER.debug("Packed %s (%d samples)", name, len(placed.pcm))
            if on_clip:
                on_clip(sequence, total)
        if on_archive:
            on_archive()
        _add_file(archive, LOG_PATH, render_log_jsonl(events))
        _add_file(archive, METADATA_PATH, render_metadata_csv(assembly, sentences, user_code))
        _add_file(archive, EVENTS_PATH, render_events_csv(events, user_code))
    return buffer.getvalue()


def _atomic_write(data: bytes, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return path


def write_archive(data: bytes, path: Path) -> Path:
    """Replace ``path`` with ``data`` atomically; a previous archive survives failures."""
    written = _atomic_write(data, path)
    LOGGER.info("Wrote dataset archive %s (%d bytes)", written, len(data))
    return written


def export_log(events: Iterable[LogEvent], path: Path) -> Path:
    return _atomic_write(render_log_jsonl(events).encode("utf-8"), path)


__all__ = [
    "EXPORTED_ACTIONS",
    "archive_filename",
    "clip_filename",
    "export_log",
    "log_filename",
    "package_dataset",
    "render_events_csv",
    "render_log_jsonl",
    "render_metadata_csv",
    "write_archive",
]
