"""Transcription job endpoints: submit, poll, follow and cancel."""

from __future__ import annotations

import logging
from typing import Annotated, AsyncIterator, Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status
from fastapi.responses import StreamingResponse

from scribe.config.settings import settings
from scribe.controllers.dependencies import (
    CurrentUserIdDep,
    JobManagerDep,
    SettingsRepositoryDep,
)
from scribe.controllers.events import SSE_HEADERS, format_event
from scribe.pipelines.transcription.ingestion import (
    parse_options,
    read_reference_files,
    resolve_content_type,
    spool_upload,
)
from scribe.pipelines.transcription.job import TranscriptionJob
from scribe.pipelines.transcription.orchestrator import JobManager
from scribe.views import ErrorResponse, JobAcceptedResponse, JobResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transcriptions", tags=["transcriptions"])

_NOT_FOUND = {404: {"model": ErrorResponse}}


def _require_job(jobs: JobManager, user_id: str, job_id: str) -> TranscriptionJob:
    job = jobs.get(user_id, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return job


@router.post(
    "",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=JobAcceptedResponse,
    responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}},
)
async def submit_transcription(
    user_id: CurrentUserIdDep,
    jobs: JobManagerDep,
    settings_repository: SettingsRepositoryDep,
    file: Annotated[UploadFile, File()],
    options: Annotated[Optional[str], Form()] = None,
    reference_files: Annotated[Optional[list[UploadFile]], File(alias="referenceFiles")] = None,
) -> JobAcceptedResponse:
    """Validate the upload and start a job; any running job of this user is cancelled."""

    content_type = resolve_content_type(file)
    global_settings = await settings_repository.load(user_id)

    references, reference_texts = await read_reference_files(reference_files or [])
    job_options = parse_options(options, reference_files=references)
    max_bytes = None if global_settings.disable_file_size_limit else settings.upload.max_file_bytes
    source = await spool_upload(
        file,
        content_type=content_type,
        max_bytes=max_bytes,
        reference_texts=reference_texts,
    )

    try:
        job = jobs.submit(user_id, source, job_options, global_settings)
    except Exception:
        source.close()
        raise

    logger.info(
        "Transcription accepted job=%s user_id=%s file=%s bytes=%s",
        job.id,
        user_id,
        source.name,
        source.size,
    )
    return JobAcceptedResponse(job_id=job.id, status=job.status, target_path=job.target_path)


@router.get("/{job_id}", response_model=JobResponse, responses=_NOT_FOUND)
async def get_transcription(job_id: str, user_id: CurrentUserIdDep, jobs: JobManagerDep) -> JobResponse:
    return JobResponse.from_job(_require_job(jobs, user_id, job_id))


@router.get("/{job_id}/events", responses=_NOT_FOUND)
async def follow_transcription(
    job_id: str,
    user_id: CurrentUserIdDep,
    jobs: JobManagerDep,
) -> StreamingResponse:
    """Stream ``fragment`` events as text arrives, then one final ``status`` event."""

    job = _require_job(jobs, user_id, job_id)

    async def event_stream() -> AsyncIterator[str]:
        async for fragment in job.feed.follow():
            yield format_event("fragment", {"text": fragment})
        snapshot = JobResponse.from_job(job).model_dump(mode="json", by_alias=True)
        yield format_event("status", snapshot)

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post(
    "/{job_id}/cancel",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=JobResponse,
    responses=_NOT_FOUND,
)
async def cancel_transcription(
    job_id: str,
    user_id: CurrentUserIdDep,
    jobs: JobManagerDep,
) -> JobResponse:
    job = jobs.cancel(user_id, job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return JobResponse.from_job(job)
