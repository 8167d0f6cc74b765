"""Authentication controller issuing anonymous identity tokens."""

from __future__ import annotations

import logging

from fastapi import APIRouter

from scribe.config.settings import settings
from scribe.utils import create_access_token, new_anonymous_user_id
from scribe.views import TokenResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/anonymous", response_model=TokenResponse)
async def sign_in_anonymously() -> TokenResponse:
    """Create a fresh anonymous identity and return its bearer token."""

    user_id = new_anonymous_user_id()
    logger.info("Issued anonymous identity user_id=%s", user_id)
    return TokenResponse(
        access_token=create_access_token(subject=user_id),
        expires_in=settings.security.access_token_expires_minutes * 60,
        user_id=user_id,
    )
