"""Common FastAPI dependencies reused across controllers."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from scribe.pipelines.transcription.orchestrator import JobManager, get_job_manager
from scribe.services.history_repository import HistoryRepository, get_history_repository
from scribe.services.settings_repository import SettingsRepository, get_settings_repository
from scribe.services.storage import ObjectStorage, get_object_storage
from scribe.utils import AuthenticationError, decode_access_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/anonymous")


async def get_current_user_id(token: Annotated[str, Depends(oauth2_scheme)]) -> str:
    """Resolve the user id carried by the bearer token."""

    try:
        payload = decode_access_token(token)
    except AuthenticationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    return payload.sub


CurrentUserIdDep = Annotated[str, Depends(get_current_user_id)]
JobManagerDep = Annotated[JobManager, Depends(get_job_manager)]
HistoryRepositoryDep = Annotated[HistoryRepository, Depends(get_history_repository)]
SettingsRepositoryDep = Annotated[SettingsRepository, Depends(get_settings_repository)]
StorageDep = Annotated[ObjectStorage, Depends(get_object_storage)]


__all__ = [
    "CurrentUserIdDep",
    "HistoryRepositoryDep",
    "JobManagerDep",
    "SettingsRepositoryDep",
    "StorageDep",
    "get_current_user_id",
    "oauth2_scheme",
]
