"""Review stage: corrected transcription plus a changelog."""

from __future__ import annotations

from scribe.services.llm_client import GeminiLlmClient
from scribe.services.response_contract import ReviewResponse

from .cancellation import CancellationToken
from .prompts import build_review_prompt
from .structured import request_structured
from .types import ReviewSettings


async def review_transcription(
    llm: GeminiLlmClient,
    *,
    model: str,
    transcription: str,
    review_settings: ReviewSettings,
    token: CancellationToken,
) -> ReviewResponse:
    return await request_structured(
        llm,
        model=model,
        prompt=build_review_prompt(transcription, review_settings),
        contract=ReviewResponse,
        token=token,
        label="review",
    )


__all__ = ["review_transcription"]
