"""Prometheus metrics definitions and helpers."""

from __future__ import annotations

from typing import Optional

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests processed",
    ("method", "route", "status"),
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ("method", "route"),
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

ERROR_COUNTER = Counter(
    "app_internal_errors_total",
    "Number of requests ending in internal server error responses",
    ("method", "route"),
)

JOB_COUNTER = Counter(
    "scribe_transcription_jobs_total",
    "Transcription jobs by terminal status",
    ("status",),
)

STAGE_LATENCY = Histogram(
    "scribe_pipeline_stage_duration_seconds",
    "Time spent in each transcription pipeline stage",
    ("stage",),
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0),
)

STAGE_FAILURES = Counter(
    "scribe_pipeline_stage_failures_total",
    "Pipeline stage failures by error kind",
    ("stage", "kind"),
)

UPLOADED_BYTES = Counter(
    "scribe_uploaded_audio_bytes_total",
    "Bytes of audio pushed to object storage",
)


def observe_request(
    method: str,
    route: str,
    status_code: int,
    duration_seconds: Optional[float],
) -> None:
    """Record metrics for a completed HTTP request; a None duration is not timed."""

    safe_route = route or "unknown"
    safe_method = method or "UNKNOWN"

    REQUEST_COUNT.labels(
        method=safe_method,
        route=safe_route,
        status=str(status_code),
    ).inc()
    if duration_seconds is not None:
        REQUEST_LATENCY.labels(method=safe_method, route=safe_route).observe(max(duration_seconds, 0))

    if status_code >= 500:
        ERROR_COUNTER.labels(method=safe_method, route=safe_route).inc()


def observe_stage(stage: str, duration_seconds: float) -> None:
    STAGE_LATENCY.labels(stage=stage).observe(max(duration_seconds, 0))


def record_stage_failure(stage: str, kind: str) -> None:
    STAGE_FAILURES.labels(stage=stage, kind=kind).inc()


def record_job_outcome(status: str) -> None:
    JOB_COUNTER.labels(status=status).inc()


def record_uploaded_bytes(size: int) -> None:
    if size > 0:
        UPLOADED_BYTES.inc(size)
