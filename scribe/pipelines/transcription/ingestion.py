"""Request ingestion helpers: validate the upload before a job exists."""

from __future__ import annotations

import codecs
import json
import logging
import mimetypes
import tempfile
from typing import Any, Sequence

from fastapi import HTTPException, UploadFile, status
from pydantic import ValidationError

from scribe.config.settings import settings

from .types import ReferenceFile, SourceFile, TranscriptionOptions

logger = logging.getLogger("scribe.pipeline")

_CHUNK_SIZE = 1024 * 1024

# Browsers and the mimetypes table report a few accepted formats under alternate names.
_CONTENT_TYPE_ALIASES = {
    "audio/mp3": "audio/mpeg",
    "audio/x-wav": "audio/wav",
    "audio/wave": "audio/wav",
    "audio/m4a": "audio/x-m4a",
    "audio/x-flac": "audio/flac",
    "video/webm": "audio/webm",
}


def resolve_content_type(audio_file: UploadFile) -> str:
    """Accept the supported audio formats whether or not the client set a content-type."""

    content_type = (audio_file.content_type or "").split(";", 1)[0].strip().lower()
    if (not content_type or content_type == "application/octet-stream") and audio_file.filename:
        guessed_type, _ = mimetypes.guess_type(audio_file.filename)
        content_type = guessed_type or content_type

    content_type = _CONTENT_TYPE_ALIASES.get(content_type, content_type)
    if content_type not in settings.upload.accepted_content_types:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid file type. Please upload an MP3, WAV, M4A, WEBM or FLAC audio file.",
        )
    return content_type


def _limit_label(max_bytes: int) -> str:
    return f"{max_bytes / (1024 * 1024):g} MB"


async def spool_upload(
    audio_file: UploadFile,
    *,
    content_type: str,
    max_bytes: int | None,
    reference_texts: dict[str, str] | None = None,
) -> SourceFile:
    """Copy the upload into a job-owned temp file, enforcing the size limit."""

    spool = tempfile.SpooledTemporaryFile(max_size=settings.upload.spool_max_bytes)
    size = 0
    try:
        while True:
            chunk = await audio_file.read(_CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if max_bytes is not None and size > max_bytes:
                raise HTTPException(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    detail=f"File is too large. The maximum size is {_limit_label(max_bytes)}.",
                )
            spool.write(chunk)
    except Exception:
        spool.close()
        raise
    finally:
        await audio_file.close()

    if size == 0:
        spool.close()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Uploaded audio file is empty",
        )

    spool.seek(0)
    return SourceFile(
        name=audio_file.filename or "audio",
        size=size,
        content_type=content_type,
        stream=spool,
        reference_texts=dict(reference_texts or {}),
    )


async def read_reference_files(
    files: Sequence[UploadFile],
) -> tuple[list[ReferenceFile], dict[str, str]]:
    """Record each reference file's name and size and keep its text for the prompt."""

    max_chars = settings.upload.reference_text_max_chars
    max_bytes = settings.upload.max_file_bytes
    # A UTF-8 character is at most four bytes.
    keep_bytes = max_chars * 4
    references: list[ReferenceFile] = []
    texts: dict[str, str] = {}
    for upload in files:
        name = upload.filename or f"reference-{len(references) + 1}"
        head = bytearray()
        size = 0
        try:
            while True:
                chunk = await upload.read(_CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > max_bytes:
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail=(
                            f"Reference file {name} is too large. "
                            f"The maximum size is {_limit_label(max_bytes)}."
                        ),
                    )
                if len(head) < keep_bytes:
                    head.extend(chunk[: keep_bytes - len(head)])
        finally:
            await upload.close()
        references.append(ReferenceFile(name=name, size=size))
        try:
            # A multi-byte character cut at the boundary is dropped, not rejected.
            text = codecs.getincrementaldecoder("utf-8")().decode(bytes(head), final=size <= keep_bytes)
        except UnicodeDecodeError:
            logger.info("Reference file %s is not UTF-8 text; listing it without content", name)
            continue
        texts[name] = text[:max_chars]
    return references, texts


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors(include_url=False):
        location = ".".join(str(item) for item in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts)


def parse_options(
    raw_options: str | None,
    *,
    reference_files: Sequence[ReferenceFile] = (),
) -> TranscriptionOptions:
    """Parse the ``options`` form field into immutable job options."""

    try:
        payload: Any = json.loads(raw_options) if raw_options else {}
    except json.JSONDecodeError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Options must be a JSON object: {exc.msg}",
        ) from exc
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Options must be a JSON object",
        )

    payload.setdefault("model", settings.gemini.default_model)
    if reference_files:
        payload.pop("reference_files", None)
        payload["referenceFiles"] = [ref.model_dump() for ref in reference_files]

    try:
        options = TranscriptionOptions.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid transcription options: {_format_validation_error(exc)}",
        ) from exc

    if options.model not in settings.gemini.allowed_models:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported model '{options.model}'",
        )
    return options


__all__ = [
    "parse_options",
    "read_reference_files",
    "resolve_content_type",
    "spool_upload",
]
