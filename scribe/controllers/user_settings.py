"""Per-user settings endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter

from scribe.controllers.dependencies import CurrentUserIdDep, SettingsRepositoryDep
from scribe.pipelines.transcription.types import GlobalSettings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("", response_model=GlobalSettings)
async def read_settings(user_id: CurrentUserIdDep, repository: SettingsRepositoryDep) -> GlobalSettings:
    """Return stored settings merged over the defaults."""

    return await repository.load(user_id)


@router.put("", response_model=GlobalSettings)
async def update_settings(
    payload: GlobalSettings,
    user_id: CurrentUserIdDep,
    repository: SettingsRepositoryDep,
) -> GlobalSettings:
    """Replace the user's settings; jobs already running keep their snapshot."""

    saved = await repository.save(user_id, payload)
    logger.info(
        "Settings updated user_id=%s size_limit_disabled=%s",
        user_id,
        saved.disable_file_size_limit,
    )
    return saved
