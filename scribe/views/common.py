"""Common response schemas."""

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Body of every non-2xx JSON response."""

    detail: str = Field(description="Message safe to show to the user")
