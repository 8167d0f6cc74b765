"""Summary stage."""

from __future__ import annotations

from scribe.services.llm_client import GeminiLlmClient
from scribe.services.response_contract import SummaryResponse

from .cancellation import CancellationToken
from .prompts import build_summary_prompt
from .structured import request_structured


async def summarize_transcription(
    llm: GeminiLlmClient,
    *,
    model: str,
    transcription: str,
    token: CancellationToken,
) -> str:
    result = await request_structured(
        llm,
        model=model,
        prompt=build_summary_prompt(transcription),
        contract=SummaryResponse,
        token=token,
        label="summary",
    )
    return result.summary


__all__ = ["summarize_transcription"]
