"""SQLAlchemy models for the history and settings stores."""

from .base import Base
from .history import HistoryRecord  # noqa: F401
from .user_settings import UserSettings  # noqa: F401

__all__ = [
    "Base",
    "HistoryRecord",
    "UserSettings",
]
