"""Durable per-user settings."""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scribe.models.user_settings import UserSettings
from scribe.pipelines.transcription.types import GlobalSettings
from scribe.services.history_repository import PersistenceError

logger = logging.getLogger(__name__)


class SettingsRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        if session_factory is None:
            from scribe.database import SessionFactory

            session_factory = SessionFactory
        self._session_factory = session_factory

    async def load(self, user_id: str) -> GlobalSettings:
        """Return stored settings with any missing keys filled from defaults."""

        try:
            async with self._session_factory() as session:
                row = await session.get(UserSettings, user_id)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not load settings: {exc}") from exc

        stored = row.data if row is not None and isinstance(row.data, dict) else {}
        return GlobalSettings.model_validate(stored)

    async def save(self, user_id: str, value: GlobalSettings) -> GlobalSettings:
        data = value.model_dump(mode="json", by_alias=True)
        try:
            async with self._session_factory() as session:
                row = await session.get(UserSettings, user_id)
                if row is None:
                    session.add(UserSettings(user_id=user_id, data=data))
                else:
                    row.data = data
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Could not save settings: {exc}") from exc

        logger.info("Settings saved user_id=%s", user_id)
        return value


_DEFAULT_REPOSITORY: SettingsRepository | None = None


def get_settings_repository() -> SettingsRepository:
    global _DEFAULT_REPOSITORY
    if _DEFAULT_REPOSITORY is None:
        _DEFAULT_REPOSITORY = SettingsRepository()
    return _DEFAULT_REPOSITORY


__all__ = ["SettingsRepository", "get_settings_repository"]
