"""History endpoints over the user's stored transcriptions.

Store and object-storage failures propagate to the application's exception
handlers (503 and 404/502 respectively).
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

from fastapi import APIRouter, HTTPException, Response, status
from fastapi.responses import StreamingResponse

from scribe.config.settings import settings
from scribe.controllers.dependencies import CurrentUserIdDep, HistoryRepositoryDep, StorageDep
from scribe.controllers.events import SSE_HEADERS, format_event
from scribe.services.history_repository import HistoryRepository, PersistenceError
from scribe.views import DownloadUrlResponse, ErrorResponse, HistoryEntry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/history", tags=["history"])

_NOT_FOUND = {404: {"model": ErrorResponse}}


async def _require_entry(repository: HistoryRepository, user_id: str, record_id: str) -> HistoryEntry:
    entry = await repository.get(user_id, record_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="History item not found")
    return entry


@router.get("", response_model=list[HistoryEntry])
async def list_history(user_id: CurrentUserIdDep, repository: HistoryRepositoryDep) -> list[HistoryEntry]:
    """Return the user's transcriptions, newest first."""

    return await repository.list(user_id)


@router.get("/events")
async def follow_history(user_id: CurrentUserIdDep, repository: HistoryRepositoryDep) -> StreamingResponse:
    """Push a ``snapshot`` event now and after every change to the collection."""

    async def event_stream() -> AsyncIterator[str]:
        try:
            async for snapshot in repository.subscribe(user_id):
                items = [entry.model_dump(mode="json", by_alias=True) for entry in snapshot]
                yield format_event("snapshot", items)
        except PersistenceError as exc:
            # Headers are already sent; report the failure in-band.
            logger.error("History subscription ended user_id=%s: %s", user_id, exc)
            yield format_event("error", {"detail": "History is temporarily unavailable"})

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/{record_id}", response_model=HistoryEntry, responses=_NOT_FOUND)
async def get_history_item(
    record_id: str,
    user_id: CurrentUserIdDep,
    repository: HistoryRepositoryDep,
) -> HistoryEntry:
    return await _require_entry(repository, user_id, record_id)


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT, responses=_NOT_FOUND)
async def delete_history_item(
    record_id: str,
    user_id: CurrentUserIdDep,
    repository: HistoryRepositoryDep,
) -> Response:
    if not await repository.delete(user_id, record_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="History item not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{record_id}/download-url", response_model=DownloadUrlResponse, responses=_NOT_FOUND)
async def get_download_url(
    record_id: str,
    user_id: CurrentUserIdDep,
    repository: HistoryRepositoryDep,
    storage: StorageDep,
) -> DownloadUrlResponse:
    """Return a short-lived URL for the stored audio of one history item."""

    entry = await _require_entry(repository, user_id, record_id)
    ttl = settings.s3.signed_url_ttl_seconds
    url = await storage.get_signed_download_url(entry.file_storage_path, ttl)
    return DownloadUrlResponse(url=url, expires_in=ttl)
