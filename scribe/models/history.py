"""SQLAlchemy model for persisted transcription history."""

from __future__ import annotations

import uuid

from sqlalchemy import JSON, Column, DateTime, Index, String, Text, func

from .base import Base


def _new_record_id() -> str:
    return str(uuid.uuid4())


class HistoryRecord(Base):
    """One finished transcription job. Rows are inserted and deleted, never updated."""

    __tablename__ = "history_records"
    __table_args__ = (Index("ix_history_records_user_created", "user_id", "created_at"),)

    id = Column(String(36), primary_key=True, default=_new_record_id)
    user_id = Column(String(128), nullable=False, index=True)
    file_name = Column(String(512), nullable=False)
    file_storage_path = Column(String(1024), nullable=False)
    transcription = Column(Text, nullable=False)
    corrected_transcription = Column(Text, nullable=True)
    summary = Column(Text, nullable=True)
    changelog = Column(Text, nullable=True)
    options = Column(JSON, nullable=False)

    # Assigned by the database clock.
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


__all__ = ["HistoryRecord"]
