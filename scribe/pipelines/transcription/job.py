"""In-memory state of one transcription job.

A job is created at submission and owned by the pipeline task until it
reaches a terminal status. Outputs are written once: the raw transcription
only grows while the stream is open, and the review, summary and history id
fields reject a second assignment.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Optional

from .cancellation import CancellationToken
from .types import GlobalSettings, SourceFile, TranscriptionOptions


class JobStatus(str, Enum):
    PROCESSING = "processing"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"


class ProcessingStage(str, Enum):
    UPLOADING = "uploading"
    TRANSCRIBING = "transcribing"
    REVIEWING = "reviewing"
    SUMMARIZING = "summarizing"
    SAVING = "saving"
    DONE = "done"


class LogStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    ERROR = "error"


_STAGE_MESSAGES = {
    ProcessingStage.UPLOADING: "Uploading audio file",
    ProcessingStage.TRANSCRIBING: "Transcribing audio",
    ProcessingStage.REVIEWING: "Reviewing transcription",
    ProcessingStage.SUMMARIZING: "Generating summary",
    ProcessingStage.SAVING: "Saving to history",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ProcessingLogEntry:
    """One line of the job's processing log."""

    stage: ProcessingStage
    message: str
    status: LogStatus = LogStatus.PENDING
    timestamp: datetime = field(default_factory=_utcnow)
    progress: Optional[float] = None
    detail: Optional[str] = None


class LiveFeed:
    """Fragments shown to the user as they arrive.

    Followers that join late replay what was already published, then tail
    new fragments until the feed is closed.
    """

    def __init__(self) -> None:
        self._fragments: list[str] = []
        self._closed = False
        self._waiters: set[asyncio.Event] = set()

    @property
    def text(self) -> str:
        return "".join(self._fragments)

    def publish(self, fragment: str) -> None:
        if self._closed:
            return
        self._fragments.append(fragment)
        self._wake()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._wake()

    async def follow(self) -> AsyncIterator[str]:
        index = 0
        while True:
            while index < len(self._fragments):
                yield self._fragments[index]
                index += 1
            if self._closed:
                return
            waiter = asyncio.Event()
            self._waiters.add(waiter)
            try:
                await waiter.wait()
            finally:
                self._waiters.discard(waiter)

    def _wake(self) -> None:
        for waiter in tuple(self._waiters):
            waiter.set()


class TranscriptionJob:
    def __init__(
        self,
        *,
        user_id: str,
        source_file: SourceFile,
        options: TranscriptionOptions,
        global_settings: GlobalSettings,
        target_path: str,
        job_id: str | None = None,
    ) -> None:
        self.id = job_id or uuid.uuid4().hex
        self.user_id = user_id
        self.file = source_file
        self.file_name = source_file.name
        self.file_size = source_file.size
        self.options = options
        self.settings = global_settings
        self.target_path = target_path
        self.token = CancellationToken()
        self.feed = LiveFeed()

        self.storage_path: Optional[str] = None
        self.raw_transcription = ""
        self.corrected_transcription: Optional[str] = None
        self.changelog: Optional[str] = None
        self.summary: Optional[str] = None
        self.history_id: Optional[str] = None

        self.status = JobStatus.PROCESSING
        self.stage = ProcessingStage.UPLOADING
        self.progress = 0.0
        self.upload_progress = 0.0
        self.error: Optional[str] = None
        self.warnings: list[str] = []
        self.created_at = _utcnow()
        self.finished_at: Optional[datetime] = None
        self.task: Optional[asyncio.Task[None]] = None

        self._stream_complete = False
        self.logs: list[ProcessingLogEntry] = [
            ProcessingLogEntry(stage=stage, message=message)
            for stage, message in _STAGE_MESSAGES.items()
            if self._stage_planned(stage)
        ]

    @property
    def is_active(self) -> bool:
        """True while the pipeline task still has work to do."""

        if self.task is not None:
            return not self.task.done()
        return self.finished_at is None

    def set_storage_path(self, path: str) -> None:
        if self.storage_path is not None:
            raise RuntimeError("storage_path is already set")
        self.storage_path = path

    def append_fragment(self, fragment: str) -> None:
        if self._stream_complete:
            raise RuntimeError("transcription is frozen")
        self.raw_transcription += fragment

    def freeze_transcription(self) -> None:
        self._stream_complete = True

    def set_review(self, corrected_transcription: str, changelog: str) -> None:
        if self.corrected_transcription is not None:
            raise RuntimeError("review result is already set")
        self.corrected_transcription = corrected_transcription
        self.changelog = changelog

    def set_summary(self, summary: str) -> None:
        if self.summary is not None:
            raise RuntimeError("summary is already set")
        self.summary = summary

    def set_history_id(self, history_id: str) -> None:
        if self.history_id is not None:
            raise RuntimeError("history_id is already set")
        self.history_id = history_id

    def advance(self, progress: float) -> None:
        self.progress = max(self.progress, min(100.0, progress))

    def report_upload_progress(self, percent: float) -> None:
        self.upload_progress = max(self.upload_progress, percent)
        # Uploading covers the first 30% of the overall bar.
        self.advance(percent * 0.3)
        entry = self._entry(ProcessingStage.UPLOADING)
        if entry is not None:
            entry.progress = self.upload_progress

    def enter_stage(self, stage: ProcessingStage, progress: float | None = None) -> None:
        self.stage = stage
        if progress is not None:
            self.advance(progress)
        entry = self._entry(stage)
        if entry is not None:
            entry.status = LogStatus.IN_PROGRESS
            entry.timestamp = _utcnow()
            entry.progress = self.progress

    def complete_stage(self, stage: ProcessingStage) -> None:
        entry = self._entry(stage)
        if entry is not None:
            entry.status = LogStatus.DONE
            entry.timestamp = _utcnow()
            entry.progress = self.progress

    def fail_stage(self, stage: ProcessingStage, detail: str) -> None:
        entry = self._entry(stage)
        if entry is not None:
            entry.status = LogStatus.ERROR
            entry.timestamp = _utcnow()
            entry.detail = detail

    def note(self, message: str) -> None:
        """Append a free-form log line tied to the current stage."""

        self.logs.append(
            ProcessingLogEntry(
                stage=self.stage,
                message=message,
                status=LogStatus.DONE,
                progress=self.progress,
            )
        )

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def mark_success(self) -> None:
        self.status = JobStatus.SUCCESS

    def fail(self, message: str) -> None:
        self.status = JobStatus.ERROR
        self.error = message

    def mark_cancelled(self) -> None:
        self.status = JobStatus.CANCELLED

    def finish(self) -> None:
        if self.status is JobStatus.SUCCESS and not self.warnings and self.history_id:
            self.advance(100.0)
        self.stage = ProcessingStage.DONE
        self.finished_at = _utcnow()

    def _stage_planned(self, stage: ProcessingStage) -> bool:
        if stage is ProcessingStage.REVIEWING:
            return self.options.review
        if stage is ProcessingStage.SUMMARIZING:
            return self.options.generate_summary
        return True

    def _entry(self, stage: ProcessingStage) -> ProcessingLogEntry | None:
        for entry in self.logs:
            if entry.stage is stage and entry.message == _STAGE_MESSAGES.get(stage):
                return entry
        return None


__all__ = [
    "JobStatus",
    "LiveFeed",
    "LogStatus",
    "ProcessingLogEntry",
    "ProcessingStage",
    "TranscriptionJob",
]
