"""Pydantic schemas used as views in the MVC architecture."""

from .auth import TokenResponse
from .common import ErrorResponse
from .history import DownloadUrlResponse, HistoryEntry
from .transcriptions import JobAcceptedResponse, JobResponse, ProcessingLogResponse

__all__ = [
    "DownloadUrlResponse",
    "ErrorResponse",
    "HistoryEntry",
    "JobAcceptedResponse",
    "JobResponse",
    "ProcessingLogResponse",
    "TokenResponse",
]
