"""Build a voice dataset archive from a recorder project directory."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from pydantic import ValidationError

from prompter.errors import DatasetError
from prompter.services.builder import BuildProgress, DatasetBuilder
from prompter.services.packager import export_log, log_filename
from prompter.settings import DatasetSettings, get_settings
from prompter.store.project_store import load_project

LOGGER = logging.getLogger("prompter.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Segment recorded takes and package them as a dataset ZIP.")
    parser.add_argument("project", type=Path, help="Directory holding project.json, the action log and take audio.")
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Archive path (default: <output_dir>/<project>_<code>_dataset.zip).",
    )
    parser.add_argument("--sample-rate", type=int, default=None, help="Target sample rate in Hz (default: 48000).")
    parser.add_argument("--user-code", default=None, help="Override the user code written to the CSV tables.")
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO).")
    parser.add_argument(
        "--export-log",
        action="store_true",
        help="Also write <project>_<code>_log.jsonl next to the archive.",
    )
    return parser


def _resolve_settings(args: argparse.Namespace) -> DatasetSettings:
    overrides = {}
    if args.sample_rate is not None:
        overrides["target_sample_rate"] = args.sample_rate
    if args.user_code is not None:
        overrides["user_code"] = args.user_code
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    return DatasetSettings(**{**get_settings().model_dump(), **overrides})


def _log_progress(update: BuildProgress) -> None:
    LOGGER.info("[%3d%%] %s", update.percent, update.message)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = _resolve_settings(args)
    except ValidationError as exc:
        parser.error(str(exc))
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        snapshot = load_project(args.project)
        if args.user_code is not None:
            snapshot = replace(snapshot, user_code=args.user_code)
        builder = DatasetBuilder(settings)
        path, result = builder.build_to_path(snapshot, args.output, progress=_log_progress)
        if args.export_log:
            log_path = path.parent / log_filename(builder.project_name(snapshot), snapshot.user_code or settings.user_code)
            export_log(snapshot.log, log_path)
            print(log_path)
    except DatasetError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    print(path)
    print(
        f"{result.clip_count} clip(s); {len(result.recorded_indices)}/{result.sentence_count} "
        f"sentence(s) recorded; missing: {len(result.missing_indices)}"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
