"""Persistence stage: write the finished job to the user's history."""

from __future__ import annotations

from scribe.services.history_repository import HistoryRecordCreate, HistoryRepository

from .job import TranscriptionJob


def build_history_record(job: TranscriptionJob) -> HistoryRecordCreate:
    """Assemble the record from job outputs; reference files keep only name and size."""

    if job.storage_path is None:
        raise RuntimeError("Cannot persist a job whose audio was never stored.")
    return HistoryRecordCreate(
        file_name=job.file_name,
        file_storage_path=job.storage_path,
        transcription=job.raw_transcription,
        corrected_transcription=job.corrected_transcription,
        changelog=job.changelog,
        summary=job.summary,
        options=job.options,
    )


async def persist_job(job: TranscriptionJob, repository: HistoryRepository) -> str:
    return await repository.create(job.user_id, build_history_record(job))


__all__ = ["build_history_record", "persist_job"]
