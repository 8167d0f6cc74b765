"""Transcription stage: open the streamed generation for the uploaded audio."""

from __future__ import annotations

import logging
from typing import AsyncIterator

from fastapi.concurrency import run_in_threadpool

from scribe.services.llm_client import GeminiLlmClient
from scribe.services.storage import ObjectStorage

from .job import TranscriptionJob
from .prompts import build_transcription_prompt
from .types import AudioSource

logger = logging.getLogger("scribe.pipeline")


async def resolve_audio_source(
    job: TranscriptionJob,
    storage: ObjectStorage,
    *,
    inline_max_bytes: int,
) -> AudioSource:
    """Send small files inline; larger ones by a signed URL to the stored copy."""

    if job.file.size <= inline_max_bytes:
        data = await run_in_threadpool(job.file.read_all)
        return AudioSource(mime_type=job.file.content_type, data=data)

    if job.storage_path is None:
        raise RuntimeError("Audio must be uploaded before it can be referenced by URL.")
    url = await job.token.run(storage.get_signed_download_url(job.storage_path))
    logger.info("Transcribing job=%s from signed URL (%s bytes)", job.id, job.file.size)
    return AudioSource(mime_type=job.file.content_type, uri=url)


async def start_transcription(
    job: TranscriptionJob,
    llm: GeminiLlmClient,
    audio: AudioSource,
) -> AsyncIterator[str]:
    """Return the fragment stream; failures before the first fragment raise here."""

    prompt = build_transcription_prompt(job.options, job.settings, job.file.reference_texts)
    logger.info(
        "Starting transcription job=%s model=%s inline=%s",
        job.id,
        job.options.model,
        audio.is_inline,
    )
    return await job.token.run(
        llm.stream_text(model=job.options.model, prompt=prompt, audio=audio)
    )


__all__ = ["resolve_audio_source", "start_transcription"]
