"""Schemas for the anonymous sign-in endpoint."""

from __future__ import annotations

from pydantic import BaseModel, Field


class TokenResponse(BaseModel):
    """Bearer token for a freshly created anonymous identity."""

    access_token: str = Field(serialization_alias="accessToken")
    token_type: str = Field(default="bearer", serialization_alias="tokenType")
    expires_in: int = Field(serialization_alias="expiresIn", description="Seconds until the token expires")
    user_id: str = Field(serialization_alias="userId", description="Owner id for jobs, history and settings")
