"""Schemas describing transcription jobs over HTTP."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from scribe.pipelines.transcription.job import (
    JobStatus,
    LogStatus,
    ProcessingLogEntry,
    ProcessingStage,
    TranscriptionJob,
)


class JobAcceptedResponse(BaseModel):
    """Returned as soon as a job is registered; the path is known before upload."""

    job_id: str = Field(serialization_alias="jobId")
    status: JobStatus
    target_path: str = Field(serialization_alias="targetPath")


class ProcessingLogResponse(BaseModel):
    stage: ProcessingStage
    message: str
    status: LogStatus
    timestamp: datetime
    progress: Optional[float] = None
    detail: Optional[str] = None

    @classmethod
    def from_entry(cls, entry: ProcessingLogEntry) -> "ProcessingLogResponse":
        return cls(
            stage=entry.stage,
            message=entry.message,
            status=entry.status,
            timestamp=entry.timestamp,
            progress=entry.progress,
            detail=entry.detail,
        )


class JobResponse(BaseModel):
    """Point-in-time snapshot of a job."""

    job_id: str = Field(serialization_alias="jobId")
    status: JobStatus
    stage: ProcessingStage
    progress: float
    upload_progress: float = Field(serialization_alias="uploadProgress")
    file_name: str = Field(serialization_alias="fileName")
    target_path: str = Field(serialization_alias="targetPath")
    storage_path: Optional[str] = Field(default=None, serialization_alias="storagePath")
    transcription: str
    corrected_transcription: Optional[str] = Field(
        default=None, serialization_alias="correctedTranscription"
    )
    changelog: Optional[str] = None
    summary: Optional[str] = None
    error: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)
    history_id: Optional[str] = Field(default=None, serialization_alias="historyId")
    logs: list[ProcessingLogResponse] = Field(default_factory=list)
    created_at: datetime = Field(serialization_alias="createdAt")
    finished_at: Optional[datetime] = Field(default=None, serialization_alias="finishedAt")

    @classmethod
    def from_job(cls, job: TranscriptionJob) -> "JobResponse":
        return cls(
            job_id=job.id,
            status=job.status,
            stage=job.stage,
            progress=round(job.progress, 2),
            upload_progress=round(job.upload_progress, 2),
            file_name=job.file_name,
            target_path=job.target_path,
            storage_path=job.storage_path,
            transcription=job.raw_transcription,
            corrected_transcription=job.corrected_transcription,
            changelog=job.changelog,
            summary=job.summary,
            error=job.error,
            warnings=list(job.warnings),
            history_id=job.history_id,
            logs=[ProcessingLogResponse.from_entry(entry) for entry in job.logs],
            created_at=job.created_at,
            finished_at=job.finished_at,
        )
