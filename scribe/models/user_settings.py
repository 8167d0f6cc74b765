"""SQLAlchemy model for per-user global settings."""

from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, String, func

from .base import Base


class UserSettings(Base):
    __tablename__ = "user_settings"

    user_id = Column(String(128), primary_key=True)
    data = Column(JSON, nullable=False, default=dict)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


__all__ = ["UserSettings"]
