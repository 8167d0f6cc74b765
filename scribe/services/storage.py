"""S3 storage for uploaded audio.

Uploads go through an ``s3transfer`` manager so each one has a future that
can be cancelled mid-flight. Progress callbacks fire on transfer worker
threads and are marshalled back onto the event loop before they reach
pipeline code.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, BinaryIO, Callable, Optional

import boto3
from boto3.s3.transfer import TransferConfig, create_transfer_manager
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    PartialCredentialsError,
)
from fastapi.concurrency import run_in_threadpool
from s3transfer.exceptions import CancelledError as TransferCancelledError
from s3transfer.futures import TransferFuture
from s3transfer.subscribers import BaseSubscriber

from scribe.config.settings import settings

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

_UNAUTHORIZED_CODES = frozenset(
    {
        "AccessDenied",
        "AllAccessDisabled",
        "ExpiredToken",
        "InvalidAccessKeyId",
        "InvalidToken",
        "SignatureDoesNotMatch",
    }
)
_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


class UploadErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    CANCELLED = "cancelled"
    TRANSPORT = "transport"


class StorageError(RuntimeError):
    """Raised when an S3 operation fails."""


class UploadError(StorageError):
    """Raised when pushing a file to S3 fails or is cancelled."""

    def __init__(self, kind: UploadErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class StorageNotFoundError(StorageError):
    """Raised when the requested object does not exist."""


def _create_s3_client() -> Any:
    client_kwargs: dict[str, Any] = {"region_name": settings.s3.region}
    if settings.s3.access_key and settings.s3.secret_key:
        client_kwargs["aws_access_key_id"] = settings.s3.access_key
        client_kwargs["aws_secret_access_key"] = settings.s3.secret_key
    return boto3.client("s3", **client_kwargs)


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _classify_upload_error(exc: BaseException) -> UploadError:
    if isinstance(exc, UploadError):
        return exc
    if isinstance(exc, TransferCancelledError):
        return UploadError(UploadErrorKind.CANCELLED, "Upload was cancelled.")
    if isinstance(exc, (NoCredentialsError, PartialCredentialsError)):
        return UploadError(UploadErrorKind.UNAUTHORIZED, f"Storage credentials unavailable: {exc}")
    if isinstance(exc, ClientError):
        status_code = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        if _error_code(exc) in _UNAUTHORIZED_CODES or status_code in (401, 403):
            return UploadError(UploadErrorKind.UNAUTHORIZED, f"Not authorized to upload: {exc}")
    return UploadError(UploadErrorKind.TRANSPORT, f"Failed to upload audio: {exc}")


def build_storage_path(
    user_id: str,
    file_name: str,
    *,
    prefix: str | None = None,
    now_ms: int | None = None,
) -> str:
    """Return the user-namespaced object key, e.g. ``uploads/<uid>/<ms>-<name>``."""

    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    safe_name = file_name.replace("\\", "/").rsplit("/", 1)[-1].strip() or "audio"
    root = (prefix or settings.s3.upload_prefix).strip("/")
    return f"{root}/{user_id}/{stamp}-{safe_name}"


class _ProgressSubscriber(BaseSubscriber):
    def __init__(self, on_bytes: Callable[[int], None]) -> None:
        self._on_bytes = on_bytes

    def on_progress(self, future: TransferFuture, bytes_transferred: int, **kwargs: Any) -> None:
        self._on_bytes(bytes_transferred)


class UploadHandle:
    """An in-flight transfer whose destination path is already known."""

    def __init__(
        self,
        storage_path: str,
        *,
        total_bytes: int,
        loop: asyncio.AbstractEventLoop,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.storage_path = storage_path
        self._total_bytes = total_bytes
        self._loop = loop
        self._on_progress = on_progress
        self._future: Optional[TransferFuture] = None
        self._transferred = 0
        self._progress = 0.0
        self._cancelled = False
        self._finished = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Abort the network transfer. No callback fires after this."""

        if self._cancelled or self._finished:
            return
        self._cancelled = True
        if self._future is not None:
            self._future.cancel()

    async def wait(self) -> str:
        """Block until the transfer finishes and return the storage path."""

        if self._future is None:
            raise UploadError(UploadErrorKind.TRANSPORT, "Upload was never started.")
        try:
            await run_in_threadpool(self._future.result)
        except Exception as exc:  # noqa: BLE001 - normalised into UploadError
            error = _classify_upload_error(exc)
            if self._cancelled:
                error = UploadError(UploadErrorKind.CANCELLED, "Upload was cancelled.")
            raise error from exc
        if self._cancelled:
            raise UploadError(UploadErrorKind.CANCELLED, "Upload was cancelled.")
        self._report(100.0)
        self._finished = True
        return self.storage_path

    def _attach(self, future: TransferFuture) -> None:
        self._future = future
        if self._cancelled:
            future.cancel()

    def _on_bytes(self, bytes_transferred: int) -> None:
        # Runs on an s3transfer worker thread.
        if self._cancelled:
            return
        self._loop.call_soon_threadsafe(self._advance, bytes_transferred)

    def _advance(self, bytes_transferred: int) -> None:
        self._transferred += bytes_transferred
        if self._total_bytes > 0:
            self._report(min(100.0, self._transferred * 100.0 / self._total_bytes))

    def _report(self, value: float) -> None:
        if self._cancelled or self._finished:
            return
        value = max(0.0, min(100.0, value))
        if value <= self._progress:
            return
        self._progress = value
        if self._on_progress is not None:
            self._on_progress(value)


class ObjectStorage:
    """Upload/sign facade over one S3 bucket."""

    def __init__(
        self,
        client: Any = None,
        *,
        bucket: str | None = None,
        transfer_manager: Any = None,
    ) -> None:
        self._client = client if client is not None else _create_s3_client()
        self._bucket = bucket or settings.s3.bucket_name
        self._transfer_manager = transfer_manager

    def _manager(self) -> Any:
        if self._transfer_manager is None:
            config = TransferConfig(multipart_threshold=settings.s3.multipart_threshold_bytes)
            self._transfer_manager = create_transfer_manager(self._client, config)
        return self._transfer_manager

    def start_upload(
        self,
        fileobj: BinaryIO,
        storage_path: str,
        *,
        size: int,
        content_type: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadHandle:
        """Begin a transfer and return immediately with its handle."""

        handle = UploadHandle(
            storage_path,
            total_bytes=size,
            loop=asyncio.get_running_loop(),
            on_progress=on_progress,
        )
        fileobj.seek(0)
        try:
            future = self._manager().upload(
                fileobj,
                self._bucket,
                storage_path,
                extra_args={"ContentType": content_type},
                subscribers=[_ProgressSubscriber(handle._on_bytes)],
            )
        except (BotoCoreError, ClientError) as exc:
            raise _classify_upload_error(exc) from exc
        handle._attach(future)
        logger.info("Upload started bucket=%s key=%s bytes=%s", self._bucket, storage_path, size)
        return handle

    async def get_signed_download_url(self, storage_path: str, ttl_seconds: int | None = None) -> str:
        """Return a temporary GET URL; raises StorageNotFoundError if the key is absent."""

        expires_in = ttl_seconds or settings.s3.signed_url_ttl_seconds

        def _sign() -> str:
            try:
                self._client.head_object(Bucket=self._bucket, Key=storage_path)
            except ClientError as exc:
                if _error_code(exc) in _NOT_FOUND_CODES:
                    raise StorageNotFoundError(
                        f"File not found in storage at path: {storage_path}"
                    ) from exc
                raise StorageError(f"Could not generate download URL: {exc}") from exc
            except BotoCoreError as exc:
                raise StorageError(f"Could not generate download URL: {exc}") from exc
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket, "Key": storage_path},
                ExpiresIn=expires_in,
            )

        return await run_in_threadpool(_sign)

    def shutdown(self) -> None:
        if self._transfer_manager is not None:
            self._transfer_manager.shutdown(cancel=True)


_DEFAULT_STORAGE: ObjectStorage | None = None


def get_object_storage() -> ObjectStorage:
    """Return a lazily-instantiated storage singleton."""

    global _DEFAULT_STORAGE
    if _DEFAULT_STORAGE is None:
        _DEFAULT_STORAGE = ObjectStorage()
    return _DEFAULT_STORAGE


def shutdown_object_storage() -> None:
    """Stop the singleton's transfer workers if it was ever created."""

    if _DEFAULT_STORAGE is not None:
        _DEFAULT_STORAGE.shutdown()


__all__ = [
    "ObjectStorage",
    "StorageError",
    "StorageNotFoundError",
    "UploadError",
    "UploadErrorKind",
    "UploadHandle",
    "build_storage_path",
    "get_object_storage",
    "shutdown_object_storage",
]
