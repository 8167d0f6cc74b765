"""Upload stage: push the job's local audio to object storage."""

from __future__ import annotations

import logging

from scribe.services.storage import ObjectStorage, UploadError, UploadErrorKind

from .cancellation import JobCancelled
from .job import TranscriptionJob

logger = logging.getLogger("scribe.pipeline")


async def upload_source(job: TranscriptionJob, storage: ObjectStorage) -> str:
    """Upload ``job.file`` to ``job.target_path`` and return the stored path.

    Cancelling the job's token aborts the transfer; a cancelled transfer
    surfaces as ``JobCancelled`` rather than an ``UploadError``.
    """

    job.token.raise_if_cancelled()
    handle = storage.start_upload(
        job.file.stream,
        job.target_path,
        size=job.file.size,
        content_type=job.file.content_type,
        on_progress=job.report_upload_progress,
    )
    remove = job.token.add_callback(handle.cancel)
    try:
        storage_path = await handle.wait()
    except UploadError as exc:
        if exc.kind is UploadErrorKind.CANCELLED or job.token.cancelled:
            logger.info("Upload cancelled job=%s path=%s", job.id, job.target_path)
            raise JobCancelled() from exc
        raise
    finally:
        remove()

    job.token.raise_if_cancelled()
    logger.info("Upload finished job=%s path=%s bytes=%s", job.id, storage_path, job.file.size)
    return storage_path


__all__ = ["upload_source"]
