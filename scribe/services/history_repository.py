"""Per-user transcription history backed by SQLAlchemy.

Records are only ever created and deleted. Every committed change pushes a
fresh snapshot of the owner's collection to live subscribers; a subscriber
that falls behind only keeps the most recent snapshot.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import AsyncIterator, Optional

from pydantic import BaseModel, Field, model_validator
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scribe.models.history import HistoryRecord
from scribe.pipelines.transcription.types import TranscriptionOptions

logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    """Raised when the document store rejects a read or write."""


class HistoryRecordCreate(BaseModel):
    """Fields the pipeline supplies; id and timestamp come from the store."""

    file_name: str = Field(min_length=1, alias="fileName")
    file_storage_path: str = Field(min_length=1, alias="fileStoragePath")
    transcription: str
    corrected_transcription: Optional[str] = Field(default=None, alias="correctedTranscription")
    changelog: Optional[str] = None
    summary: Optional[str] = None
    options: TranscriptionOptions

    model_config = {"populate_by_name": True, "frozen": True}

    @model_validator(mode="after")
    def review_fields_together(self) -> "HistoryRecordCreate":
        if (self.corrected_transcription is None) != (self.changelog is None):
            raise ValueError("correctedTranscription and changelog must be stored together.")
        return self


class HistoryEntry(BaseModel):
    id: str
    file_name: str = Field(alias="fileName")
    file_storage_path: str = Field(alias="fileStoragePath")
    transcription: str
    corrected_transcription: Optional[str] = Field(default=None, alias="correctedTranscription")
    changelog: Optional[str] = None
    summary: Optional[str] = None
    options: TranscriptionOptions
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    model_config = {"populate_by_name": True, "frozen": True}


def _to_entry(row: HistoryRecord) -> HistoryEntry:
    return HistoryEntry(
        id=row.id,
        file_name=row.file_name,
        file_storage_path=row.file_storage_path,
        transcription=row.transcription,
        corrected_transcription=row.corrected_transcription,
        changelog=row.changelog,
        summary=row.summary,
        options=TranscriptionOptions.model_validate(row.options or {}),
        created_at=row.created_at,
    )


class HistoryBroadcaster:
    """Fan-out of collection snapshots to per-user subscriber queues."""

    def __init__(self) -> None:
        self._queues: dict[str, set[asyncio.Queue[list[HistoryEntry]]]] = {}

    def has_subscribers(self, user_id: str) -> bool:
        return bool(self._queues.get(user_id))

    def register(self, user_id: str) -> asyncio.Queue[list[HistoryEntry]]:
        queue: asyncio.Queue[list[HistoryEntry]] = asyncio.Queue(maxsize=1)
        self._queues.setdefault(user_id, set()).add(queue)
        return queue

    def unregister(self, user_id: str, queue: asyncio.Queue[list[HistoryEntry]]) -> None:
        queues = self._queues.get(user_id)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            self._queues.pop(user_id, None)

    def publish(self, user_id: str, snapshot: list[HistoryEntry]) -> None:
        for queue in tuple(self._queues.get(user_id, ())):
            if queue.full():
                # Replace the stale snapshot the subscriber has not read yet.
                queue.get_nowait()
            queue.put_nowait(snapshot)


class HistoryRepository:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        broadcaster: HistoryBroadcaster | None = None,
    ) -> None:
        if session_factory is None:
            from scribe.database import SessionFactory

            session_factory = SessionFactory
        self._session_factory = session_factory
        self._broadcaster = broadcaster or HistoryBroadcaster()

    async def create(self, user_id: str, record: HistoryRecordCreate) -> str:
        """Insert one record and return the id the store assigned."""

        row = HistoryRecord(
            user_id=user_id,
            file_name=record.file_name,
            file_storage_path=record.file_storage_path,
            transcription=record.transcription,
            corrected_transcription=record.corrected_transcription,
            changelog=record.changelog,
            summary=record.summary,
            options=record.options.model_dump(mode="json", by_alias=True),
        )
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error("Failed to save history user_id=%s: %s", user_id, exc)
            raise PersistenceError(f"Could not save transcription history: {exc}") from exc

        logger.info("History record created user_id=%s id=%s", user_id, row.id)
        await self._notify(user_id)
        return row.id

    async def list(self, user_id: str) -> list[HistoryEntry]:
        """Return the user's records, newest first."""

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(HistoryRecord)
                    .where(HistoryRecord.user_id == user_id)
                    .order_by(HistoryRecord.created_at.desc())
                )
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not load transcription history: {exc}") from exc
        return [_to_entry(row) for row in rows]

    async def get(self, user_id: str, record_id: str) -> HistoryEntry | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(HistoryRecord).where(
                        HistoryRecord.id == record_id,
                        HistoryRecord.user_id == user_id,
                    )
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not load history record: {exc}") from exc
        return _to_entry(row) if row is not None else None

    async def delete(self, user_id: str, record_id: str) -> bool:
        """Remove a record; returns False when it does not exist for this user."""

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(HistoryRecord).where(
                        HistoryRecord.id == record_id,
                        HistoryRecord.user_id == user_id,
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not delete history record: {exc}") from exc

        deleted = bool(result.rowcount)
        if deleted:
            logger.info("History record deleted user_id=%s id=%s", user_id, record_id)
            await self._notify(user_id)
        return deleted

    async def subscribe(self, user_id: str) -> AsyncIterator[list[HistoryEntry]]:
        """Yield the current snapshot, then a new one after every change."""

        queue = self._broadcaster.register(user_id)
        try:
            yield await self.list(user_id)
            while True:
                yield await queue.get()
        finally:
            self._broadcaster.unregister(user_id, queue)

    async def _notify(self, user_id: str) -> None:
        if not self._broadcaster.has_subscribers(user_id):
            return
        try:
            snapshot = await self.list(user_id)
        except PersistenceError as exc:
            logger.warning("Skipping history push user_id=%s: %s", user_id, exc)
            return
        self._broadcaster.publish(user_id, snapshot)


_DEFAULT_REPOSITORY: HistoryRepository | None = None


def get_history_repository() -> HistoryRepository:
    """Return a lazily-instantiated repository singleton."""

    global _DEFAULT_REPOSITORY
    if _DEFAULT_REPOSITORY is None:
        _DEFAULT_REPOSITORY = HistoryRepository()
    return _DEFAULT_REPOSITORY


__all__ = [
    "HistoryBroadcaster",
    "HistoryEntry",
    "HistoryRecordCreate",
    "HistoryRepository",
    "PersistenceError",
    "get_history_repository",
]
