"""Prometheus instrumentation for requests and transcription jobs."""

from .metrics import (
    observe_request,
    observe_stage,
    record_job_outcome,
    record_stage_failure,
    record_uploaded_bytes,
)

__all__ = [
    "observe_request",
    "observe_stage",
    "record_job_outcome",
    "record_stage_failure",
    "record_uploaded_bytes",
]
