import asyncio
import io
import threading

import boto3
import pytest
from botocore.exceptions import ClientError
from botocore.stub import Stubber
from s3transfer.exceptions import CancelledError as TransferCancelledError

from scribe.services.storage import (
    ObjectStorage,
    StorageError,
    StorageNotFoundError,
    UploadError,
    UploadErrorKind,
    build_storage_path,
)

BUCKET = "test-bucket"


class _FakeFuture:
    def __init__(self, error=None):
        self.error = error
        self.cancelled = False
        self.done = threading.Event()

    def cancel(self):
        self.cancelled = True
        self.done.set()

    def result(self):
        if not self.done.wait(timeout=5):
            raise TimeoutError("transfer never finished")
        if self.cancelled:
            raise TransferCancelledError("transfer cancelled")
        if self.error is not None:
            raise self.error
        return None


class _FakeTransferManager:
    """Reports progress in fixed chunks, then completes unless told to hang."""

    def __init__(self, chunks=(), *, error=None, complete=True):
        self.chunks = chunks
        self.error = error
        self.complete = complete
        self.calls = []
        self.futures = []
        self.shutdown_calls = []

    def upload(self, fileobj, bucket, key, extra_args=None, subscribers=None):
        self.calls.append(
            {"bucket": bucket, "key": key, "extra_args": extra_args, "data": fileobj.read()}
        )
        future = _FakeFuture(error=self.error)
        for chunk in self.chunks:
            for subscriber in subscribers or ():
                subscriber.on_progress(future=future, bytes_transferred=chunk)
        if self.complete:
            future.done.set()
        self.futures.append(future)
        return future

    def shutdown(self, cancel=False):
        self.shutdown_calls.append(cancel)


def _client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


def test_build_storage_path_namespaces_by_user():
    path = build_storage_path("user-1", "C:\\recordings\\standup.mp3", prefix="uploads", now_ms=1700)
    assert path == "uploads/user-1/1700-standup.mp3"


def test_build_storage_path_falls_back_for_blank_names():
    assert build_storage_path("u", "  ", prefix="/audio/", now_ms=5) == "audio/u/5-audio"


def test_upload_reports_progress_and_returns_path():
    manager = _FakeTransferManager(chunks=(4, 4, 2))
    storage = ObjectStorage(_client(), bucket=BUCKET, transfer_manager=manager)
    progress = []

    async def scenario():
        handle = storage.start_upload(
            io.BytesIO(b"0123456789"),
            "uploads/u/1-a.mp3",
            size=10,
            content_type="audio/mpeg",
            on_progress=progress.append,
        )
        return await handle.wait()

    assert asyncio.run(scenario()) == "uploads/u/1-a.mp3"
    assert progress == [40.0, 80.0, 100.0]
    call = manager.calls[0]
    assert call["bucket"] == BUCKET
    assert call["extra_args"] == {"ContentType": "audio/mpeg"}
    assert call["data"] == b"0123456789"


def test_cancelled_upload_raises_cancelled_kind():
    manager = _FakeTransferManager(complete=False)
    storage = ObjectStorage(_client(), bucket=BUCKET, transfer_manager=manager)

    async def scenario():
        handle = storage.start_upload(
            io.BytesIO(b"abc"), "uploads/u/1-a.mp3", size=3, content_type="audio/mpeg"
        )
        handle.cancel()
        with pytest.raises(UploadError) as excinfo:
            await handle.wait()
        return handle, excinfo.value

    handle, error = asyncio.run(scenario())

    assert handle.cancelled
    assert manager.futures[0].cancelled
    assert error.kind is UploadErrorKind.CANCELLED


def test_access_denied_is_reported_as_unauthorized():
    denied = ClientError(
        {
            "Error": {"Code": "AccessDenied", "Message": "Access Denied"},
            "ResponseMetadata": {"HTTPStatusCode": 403},
        },
        "PutObject",
    )
    storage = ObjectStorage(
        _client(), bucket=BUCKET, transfer_manager=_FakeTransferManager(error=denied)
    )

    async def scenario():
        handle = storage.start_upload(
            io.BytesIO(b"abc"), "uploads/u/1-a.mp3", size=3, content_type="audio/mpeg"
        )
        await handle.wait()

    with pytest.raises(UploadError) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.kind is UploadErrorKind.UNAUTHORIZED


def test_transport_failures_are_reported_as_transport():
    broken = ClientError(
        {"Error": {"Code": "SlowDown", "Message": "Reduce your request rate"}}, "PutObject"
    )
    storage = ObjectStorage(
        _client(), bucket=BUCKET, transfer_manager=_FakeTransferManager(error=broken)
    )

    async def scenario():
        handle = storage.start_upload(
            io.BytesIO(b"abc"), "uploads/u/1-a.mp3", size=3, content_type="audio/mpeg"
        )
        await handle.wait()

    with pytest.raises(UploadError) as excinfo:
        asyncio.run(scenario())
    assert excinfo.value.kind is UploadErrorKind.TRANSPORT


def test_signed_url_checks_object_exists():
    client = _client()
    storage = ObjectStorage(client, bucket=BUCKET, transfer_manager=_FakeTransferManager())

    with Stubber(client) as stubber:
        stubber.add_response(
            "head_object",
            {"ContentLength": 3},
            {"Bucket": BUCKET, "Key": "uploads/u/1-a.mp3"},
        )
        url = asyncio.run(storage.get_signed_download_url("uploads/u/1-a.mp3", ttl_seconds=60))
        stubber.assert_no_pending_responses()

    assert url.startswith("https://")
    assert "uploads/u/1-a.mp3" in url


def test_signed_url_for_missing_object_raises_not_found():
    client = _client()
    storage = ObjectStorage(client, bucket=BUCKET, transfer_manager=_FakeTransferManager())

    with Stubber(client) as stubber:
        stubber.add_client_error(
            "head_object",
            service_error_code="404",
            http_status_code=404,
            expected_params={"Bucket": BUCKET, "Key": "uploads/u/missing.mp3"},
        )
        with pytest.raises(StorageNotFoundError):
            asyncio.run(storage.get_signed_download_url("uploads/u/missing.mp3"))


def test_signed_url_other_errors_raise_storage_error():
    client = _client()
    storage = ObjectStorage(client, bucket=BUCKET, transfer_manager=_FakeTransferManager())

    with Stubber(client) as stubber:
        stubber.add_client_error("head_object", service_error_code="InternalError", http_status_code=500)
        with pytest.raises(StorageError) as excinfo:
            asyncio.run(storage.get_signed_download_url("uploads/u/1-a.mp3"))

    assert not isinstance(excinfo.value, StorageNotFoundError)


def test_shutdown_cancels_pending_transfers():
    manager = _FakeTransferManager()
    ObjectStorage(_client(), bucket=BUCKET, transfer_manager=manager).shutdown()
    assert manager.shutdown_calls == [True]
