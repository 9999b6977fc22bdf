"""Prometheus metrics for the capture and transcription pipeline."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

SEGMENTS_FINALIZED = Counter(
    "segscribe_segments_finalized_total",
    "Segment boundaries handled by the segmenter",
    labelnames=("outcome",),
)

REMOTE_ATTEMPTS = Counter(
    "segscribe_remote_attempts_total",
    "Remote transcription attempts by outcome kind",
    labelnames=("kind",),
)

TRANSCRIPTION_RESULTS = Counter(
    "segscribe_transcriptions_total",
    "Finished transcription jobs",
    labelnames=("backend", "status"),
)

FALLBACK_INVOCATIONS = Counter(
    "segscribe_fallback_invocations_total",
    "Local fallback runs",
    labelnames=("outcome",),
)

OFFLINE_QUEUE_SIZE = Gauge(
    "segscribe_offline_queue_size",
    "Segment identifiers waiting for connectivity",
)

JOB_DURATION = Histogram(
    "segscribe_job_duration_seconds",
    "Wall time spent on one transcription job",
)
