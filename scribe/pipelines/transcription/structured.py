"""Structured-output calls shared by the review and summary stages."""

from __future__ import annotations

import logging
from typing import Type, TypeVar

from pydantic import ValidationError

from scribe.config.settings import settings
from scribe.services.llm_client import GeminiLlmClient, GenerationError, GenerationErrorKind
from scribe.services.response_contract import StructuredContract

from .cancellation import CancellationToken

logger = logging.getLogger("scribe.pipeline")

ContractT = TypeVar("ContractT", bound=StructuredContract)


def _truncate(value: str, max_length: int = 500) -> str:
    if len(value) <= max_length:
        return value
    return value[: max_length - 3] + "..."


async def request_structured(
    llm: GeminiLlmClient,
    *,
    model: str,
    prompt: str,
    contract: Type[ContractT],
    token: CancellationToken,
    label: str,
    max_retries: int | None = None,
) -> ContractT:
    """Call the model and validate its JSON, retrying when the shape is wrong."""

    retries = settings.gemini.max_json_retries if max_retries is None else max_retries
    for attempt in range(retries + 1):
        raw_response = await token.run(
            llm.generate_json(model=model, prompt=prompt, schema=contract)
        )
        logger.debug(
            "Raw %s response model=%s attempt=%s: %s",
            label,
            model,
            attempt + 1,
            _truncate(raw_response),
        )
        try:
            return contract.from_json(raw_response)
        except ValidationError as exc:
            logger.warning(
                "Invalid %s JSON model=%s attempt=%s: %s",
                label,
                model,
                attempt + 1,
                exc,
            )
            if attempt < retries:
                continue
            raise GenerationError(
                GenerationErrorKind.MALFORMED,
                f"The {label} response did not match the expected format.",
            ) from exc

    raise GenerationError(GenerationErrorKind.MALFORMED, f"No valid {label} response.")


__all__ = ["request_structured"]
