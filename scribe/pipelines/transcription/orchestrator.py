"""Job orchestration for the transcription pipeline.

``TranscriptionPipeline.run`` drives one job through every stage and always
leaves it in a terminal status; no stage error escapes the job task.
``JobManager`` owns the running jobs, enforces one active job per user and
keeps a bounded number of finished jobs around for status polling.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from contextlib import contextmanager
from typing import AsyncIterator, Iterator, Optional

from scribe.config.settings import settings
from scribe.services.history_repository import (
    HistoryRepository,
    PersistenceError,
    get_history_repository,
)
from scribe.services.llm_client import (
    GeminiLlmClient,
    GenerationError,
    GenerationErrorKind,
    get_llm_client,
)
from scribe.services.storage import (
    ObjectStorage,
    StorageError,
    UploadError,
    UploadErrorKind,
    build_storage_path,
    get_object_storage,
)
from scribe.telemetry import (
    observe_stage,
    record_job_outcome,
    record_stage_failure,
    record_uploaded_bytes,
)

from .cancellation import JobCancelled
from .job import JobStatus, ProcessingStage, TranscriptionJob
from .persistence import persist_job
from .review import review_transcription
from .splitter import StreamBranch, fork
from .summary import summarize_transcription
from .transcription import resolve_audio_source, start_transcription
from .types import GlobalSettings, SourceFile, TranscriptionOptions
from .upload import upload_source

logger = logging.getLogger("scribe.pipeline")
transcript_logger = logging.getLogger("scribe.logs.transcript")

TEMPORARILY_UNAVAILABLE_MESSAGE = (
    "The transcription service is temporarily unavailable. Please try again later."
)
MALFORMED_RESPONSE_MESSAGE = (
    "The AI service returned an unexpected response. Please try again."
)
UNKNOWN_ERROR_MESSAGE = "An unknown error occurred during transcription."


def describe_failure(exc: BaseException) -> str:
    """Turn a stage error into the message shown to the user."""

    if isinstance(exc, GenerationError):
        if exc.retryable:
            return TEMPORARILY_UNAVAILABLE_MESSAGE
        if exc.kind is GenerationErrorKind.MALFORMED:
            return MALFORMED_RESPONSE_MESSAGE
        return str(exc) or UNKNOWN_ERROR_MESSAGE
    if isinstance(exc, UploadError):
        if exc.kind is UploadErrorKind.UNAUTHORIZED:
            return "You are not authorized to upload files. Please sign in again."
        return "Uploading the audio file failed. Please check your connection and try again."
    if isinstance(exc, PersistenceError):
        return "The transcription finished but could not be saved to history."
    if isinstance(exc, StorageError):
        return "The uploaded audio could not be read from storage."
    return UNKNOWN_ERROR_MESSAGE


def _error_kind(exc: BaseException) -> str:
    kind = getattr(exc, "kind", None)
    return kind.value if kind is not None else exc.__class__.__name__


@contextmanager
def _timed(stage: ProcessingStage) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        observe_stage(stage.value, time.perf_counter() - started)


class TranscriptionPipeline:
    def __init__(
        self,
        storage: ObjectStorage,
        llm: GeminiLlmClient,
        history: HistoryRepository,
        *,
        inline_max_bytes: int | None = None,
    ) -> None:
        self._storage = storage
        self._llm = llm
        self._history = history
        self._inline_max_bytes = (
            settings.gemini.inline_audio_max_bytes if inline_max_bytes is None else inline_max_bytes
        )

    async def run(self, job: TranscriptionJob) -> None:
        """Drive ``job`` to a terminal status."""

        logger.info(
            "Job started job=%s user=%s file=%s bytes=%s model=%s",
            job.id,
            job.user_id,
            job.file_name,
            job.file_size,
            job.options.model,
        )
        try:
            await self._execute(job)
        except JobCancelled:
            self._handle_cancellation(job)
        except asyncio.CancelledError:
            job.token.cancel()
            self._handle_cancellation(job)
            raise
        except Exception as exc:  # noqa: BLE001 - the job task must not fail
            logger.exception("Unexpected pipeline failure job=%s stage=%s", job.id, job.stage.value)
            if job.status is JobStatus.PROCESSING:
                job.fail(describe_failure(exc))
            else:
                job.add_warning(describe_failure(exc))
        finally:
            job.file.close()
            job.finish()
            job.feed.close()
            record_job_outcome(job.status.value)
            logger.info(
                "Job finished job=%s status=%s history_id=%s warnings=%s",
                job.id,
                job.status.value,
                job.history_id,
                len(job.warnings),
            )

    async def _execute(self, job: TranscriptionJob) -> None:
        token = job.token
        token.raise_if_cancelled()

        job.enter_stage(ProcessingStage.UPLOADING, 0.0)
        with _timed(ProcessingStage.UPLOADING):
            try:
                storage_path = await upload_source(job, self._storage)
            except UploadError as exc:
                self._fail(job, ProcessingStage.UPLOADING, exc)
                return
        job.set_storage_path(storage_path)
        job.complete_stage(ProcessingStage.UPLOADING)
        record_uploaded_bytes(job.file_size)

        token.raise_if_cancelled()
        job.enter_stage(ProcessingStage.TRANSCRIBING, 30.0)
        with _timed(ProcessingStage.TRANSCRIBING):
            try:
                try:
                    audio = await resolve_audio_source(
                        job, self._storage, inline_max_bytes=self._inline_max_bytes
                    )
                    stream = await start_transcription(job, self._llm, audio)
                finally:
                    job.file.close()
                await self._consume_stream(job, stream)
            except (GenerationError, StorageError) as exc:
                job.freeze_transcription()
                self._fail(job, ProcessingStage.TRANSCRIBING, exc)
                return

        job.freeze_transcription()
        job.complete_stage(ProcessingStage.TRANSCRIBING)
        job.advance(60.0)
        job.mark_success()
        transcript_logger.info(
            "job=%s user=%s file=%s chars=%s\n%s",
            job.id,
            job.user_id,
            job.file_name,
            len(job.raw_transcription),
            job.raw_transcription,
        )

        await self._post_process(job)

    async def _consume_stream(self, job: TranscriptionJob, stream: AsyncIterator[str]) -> None:
        """Fan the stream out to the live feed and the job's accumulated text."""

        feed_branch, buffer_branch = fork(stream)
        removers = [
            job.token.add_callback(feed_branch.cancel),
            job.token.add_callback(buffer_branch.cancel),
        ]
        relay = asyncio.create_task(self._relay_feed(job, feed_branch))
        try:
            async for fragment in buffer_branch:
                job.token.raise_if_cancelled()
                job.append_fragment(fragment)
            job.token.raise_if_cancelled()
        except (JobCancelled, asyncio.CancelledError):
            feed_branch.cancel()
            buffer_branch.cancel()
            raise
        finally:
            for remove in removers:
                remove()
            await relay

    @staticmethod
    async def _relay_feed(job: TranscriptionJob, branch: StreamBranch[str]) -> None:
        try:
            async for fragment in branch:
                job.feed.publish(fragment)
        except GenerationError as exc:
            # The accumulator reports the same failure on the job.
            logger.debug("Live feed stopped job=%s: %s", job.id, exc)

    async def _post_process(self, job: TranscriptionJob) -> None:
        token = job.token
        try:
            if job.options.review:
                token.raise_if_cancelled()
                job.enter_stage(ProcessingStage.REVIEWING, 70.0)
                with _timed(ProcessingStage.REVIEWING):
                    review = await review_transcription(
                        self._llm,
                        model=job.options.model,
                        transcription=job.raw_transcription,
                        review_settings=job.settings.review_settings,
                        token=token,
                    )
                job.set_review(review.corrected_transcription, review.changelog)
                job.complete_stage(ProcessingStage.REVIEWING)

            if job.options.generate_summary:
                token.raise_if_cancelled()
                job.enter_stage(ProcessingStage.SUMMARIZING, 80.0)
                source_text = (
                    job.corrected_transcription
                    if job.corrected_transcription is not None
                    else job.raw_transcription
                )
                with _timed(ProcessingStage.SUMMARIZING):
                    summary = await summarize_transcription(
                        self._llm,
                        model=job.options.model,
                        transcription=source_text,
                        token=token,
                    )
                job.set_summary(summary)
                job.complete_stage(ProcessingStage.SUMMARIZING)

            token.raise_if_cancelled()
            job.enter_stage(ProcessingStage.SAVING, 90.0)
            # Not tied to the token: a write that has started always completes.
            with _timed(ProcessingStage.SAVING):
                history_id = await persist_job(job, self._history)
            job.set_history_id(history_id)
            job.complete_stage(ProcessingStage.SAVING)
        except (GenerationError, PersistenceError) as exc:
            stage = job.stage
            record_stage_failure(stage.value, _error_kind(exc))
            logger.warning("Post-processing failed job=%s stage=%s: %s", job.id, stage.value, exc)
            job.fail_stage(stage, str(exc))
            job.add_warning(describe_failure(exc))

    def _fail(self, job: TranscriptionJob, stage: ProcessingStage, exc: Exception) -> None:
        record_stage_failure(stage.value, _error_kind(exc))
        logger.warning(
            "Stage failed job=%s stage=%s kind=%s: %s",
            job.id,
            stage.value,
            _error_kind(exc),
            exc,
        )
        job.fail_stage(stage, str(exc))
        job.fail(describe_failure(exc))

    @staticmethod
    def _handle_cancellation(job: TranscriptionJob) -> None:
        job.fail_stage(job.stage, "Cancelled by user")
        if job.status is JobStatus.SUCCESS:
            job.note("Cancelled after transcription finished; remaining steps were skipped.")
            logger.info("Post-processing cancelled job=%s stage=%s", job.id, job.stage.value)
            return
        job.mark_cancelled()
        job.note("Transcription cancelled.")
        logger.info("Job cancelled job=%s stage=%s", job.id, job.stage.value)


class JobManager:
    """Owns transcription jobs for the lifetime of the process."""

    def __init__(
        self,
        pipeline: TranscriptionPipeline | None = None,
        *,
        max_retained: int | None = None,
    ) -> None:
        self._pipeline = pipeline
        self._max_retained = max_retained or settings.max_retained_jobs
        self._jobs: "OrderedDict[str, TranscriptionJob]" = OrderedDict()
        self._active: dict[str, TranscriptionJob] = {}

    @property
    def pipeline(self) -> TranscriptionPipeline:
        if self._pipeline is None:
            self._pipeline = TranscriptionPipeline(
                get_object_storage(),
                get_llm_client(),
                get_history_repository(),
            )
        return self._pipeline

    def submit(
        self,
        user_id: str,
        source_file: SourceFile,
        options: TranscriptionOptions,
        global_settings: GlobalSettings,
    ) -> TranscriptionJob:
        """Cancel the user's running job, then start and return a new one."""

        pipeline = self.pipeline
        previous = self._active.get(user_id)
        if previous is not None and previous.is_active and previous.token.cancel():
            logger.info("Cancelled job=%s for user=%s: superseded", previous.id, user_id)

        job = TranscriptionJob(
            user_id=user_id,
            source_file=source_file,
            options=options,
            global_settings=global_settings,
            target_path=build_storage_path(user_id, source_file.safe_name),
        )
        self._jobs[job.id] = job
        self._active[user_id] = job
        job.task = asyncio.get_running_loop().create_task(
            self._run(pipeline, job), name=f"transcription-{job.id}"
        )
        self._prune()
        return job

    @property
    def active_jobs(self) -> int:
        return sum(1 for job in self._active.values() if job.is_active)

    def get(self, user_id: str, job_id: str) -> Optional[TranscriptionJob]:
        job = self._jobs.get(job_id)
        if job is None or job.user_id != user_id:
            return None
        return job

    def cancel(self, user_id: str, job_id: str) -> Optional[TranscriptionJob]:
        job = self.get(user_id, job_id)
        if job is not None and job.token.cancel():
            logger.info("Cancellation requested job=%s user=%s", job_id, user_id)
        return job

    async def shutdown(self) -> None:
        """Cancel every running job and wait for the tasks to unwind."""

        tasks = []
        for job in self._jobs.values():
            if job.task is not None and not job.task.done():
                job.token.cancel()
                tasks.append(job.task)
        if tasks:
            logger.info("Waiting for %s transcription jobs to stop", len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, pipeline: TranscriptionPipeline, job: TranscriptionJob) -> None:
        try:
            await pipeline.run(job)
        finally:
            if self._active.get(job.user_id) is job:
                del self._active[job.user_id]

    def _prune(self) -> None:
        excess = len(self._jobs) - self._max_retained
        if excess <= 0:
            return
        finished = [job_id for job_id, job in self._jobs.items() if not job.is_active]
        for job_id in finished[:excess]:
            del self._jobs[job_id]


_DEFAULT_MANAGER: JobManager | None = None


def get_job_manager() -> JobManager:
    """Return the process-wide job manager."""

    global _DEFAULT_MANAGER
    if _DEFAULT_MANAGER is None:
        _DEFAULT_MANAGER = JobManager()
    return _DEFAULT_MANAGER


__all__ = [
    "JobManager",
    "MALFORMED_RESPONSE_MESSAGE",
    "TEMPORARILY_UNAVAILABLE_MESSAGE",
    "TranscriptionPipeline",
    "describe_failure",
    "get_job_manager",
]
