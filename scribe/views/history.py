"""Schemas for the history endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field

from scribe.services.history_repository import HistoryEntry


class DownloadUrlResponse(BaseModel):
    url: str
    expires_in: int = Field(serialization_alias="expiresIn")


__all__ = ["DownloadUrlResponse", "HistoryEntry"]
