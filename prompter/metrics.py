"""Prometheus metrics helpers."""

from __future__ import annotations

from prometheus_client import Counter, Summary

DATASET_BUILD_COUNTER = Counter(
    "dataset_builds_total",
    "Count of dataset build invocations",
    labelnames=("status",),
)

DATASET_BUILD_DURATION = Summary(
    "dataset_build_seconds",
    "Time spent decoding, segmenting and packaging a dataset",
)

DATASET_SEGMENT_COUNTER = Counter(
    "dataset_segments_total",
    "Segments produced while splitting takes by navigation events",
    labelnames=("outcome",),
)
