"""Exceptions raised by the dataset build pipeline."""

from __future__ import annotations


class DatasetError(Exception):
    """Base class for every failure surfaced by the builder."""


class DecodeError(DatasetError):
    """A take's encoded audio is not a recognised audio container."""


class NoRecordingsError(DatasetError):
    """A build was requested although no session holds a take."""


class ProjectLoadError(DatasetError):
    """A project snapshot on disk is missing or malformed."""


__all__ = ["DatasetError", "DecodeError", "NoRecordingsError", "ProjectLoadError"]
