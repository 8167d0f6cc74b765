"""Thin Gemini client wrapper for streamed and structured generations."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, AsyncIterator, Type

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types
from pydantic import BaseModel

from scribe.config.settings import settings
from scribe.pipelines.transcription.types import AudioSource

logger = logging.getLogger(__name__)

_OVERLOADED_STATUS_CODES = frozenset({500, 502, 503, 504})


class GenerationErrorKind(str, Enum):
    OVERLOADED = "overloaded"
    RATE_LIMITED = "rate_limited"
    MALFORMED = "malformed"
    PERMANENT = "permanent"


class GenerationError(RuntimeError):
    """Raised when a text-generation call fails or returns unusable output."""

    def __init__(
        self,
        kind: GenerationErrorKind,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind in (GenerationErrorKind.OVERLOADED, GenerationErrorKind.RATE_LIMITED)


def classify_generation_error(exc: BaseException) -> GenerationError:
    """Map SDK/transport failures onto the generation error taxonomy."""

    if isinstance(exc, GenerationError):
        return exc
    if isinstance(exc, genai_errors.APIError):
        code = exc.code
        message = exc.message or str(exc)
        if code == 429:
            if "quota" in message.lower():
                return GenerationError(GenerationErrorKind.PERMANENT, message, status_code=code)
            return GenerationError(GenerationErrorKind.RATE_LIMITED, message, status_code=code)
        if code in _OVERLOADED_STATUS_CODES:
            return GenerationError(GenerationErrorKind.OVERLOADED, message, status_code=code)
        return GenerationError(GenerationErrorKind.PERMANENT, message, status_code=code)
    if isinstance(exc, httpx.TransportError):
        return GenerationError(GenerationErrorKind.OVERLOADED, f"Transport failure: {exc}")
    return GenerationError(GenerationErrorKind.PERMANENT, str(exc) or exc.__class__.__name__)


class GeminiLlmClient:
    """Invoke Gemini models with standard configuration."""

    def __init__(self, client: Any = None) -> None:
        self._client = client or genai.Client(api_key=settings.gemini.api_key.get_secret_value())

    async def stream_text(
        self,
        *,
        model: str,
        prompt: str,
        audio: AudioSource | None = None,
    ) -> AsyncIterator[str]:
        """Start a streamed generation and return its non-empty text fragments."""

        config = genai_types.GenerateContentConfig(temperature=settings.gemini.temperature)
        try:
            stream = await self._client.aio.models.generate_content_stream(
                model=model,
                contents=self._build_contents(prompt, audio),
                config=config,
            )
        except Exception as exc:
            raise classify_generation_error(exc) from exc
        return self._iterate(stream, model)

    async def generate_json(
        self,
        *,
        model: str,
        prompt: str,
        schema: Type[BaseModel],
    ) -> str:
        """Run a single structured-output call and return the raw JSON text."""

        config = genai_types.GenerateContentConfig(
            temperature=settings.gemini.temperature,
            response_mime_type="application/json",
            response_schema=schema,
        )
        try:
            response = await self._client.aio.models.generate_content(
                model=model,
                contents=prompt,
                config=config,
            )
        except Exception as exc:
            raise classify_generation_error(exc) from exc
        return response.text or ""

    async def _iterate(self, stream: AsyncIterator[Any], model: str) -> AsyncIterator[str]:
        count = 0
        try:
            async for chunk in stream:
                text = chunk.text
                if text:
                    count += 1
                    yield text
        except Exception as exc:
            error = classify_generation_error(exc)
            logger.warning(
                "Gemini stream failed model=%s after %s fragments kind=%s: %s",
                model,
                count,
                error.kind.value,
                error,
            )
            raise error from exc

    @staticmethod
    def _build_contents(prompt: str, audio: AudioSource | None) -> list[genai_types.Content]:
        parts = [genai_types.Part.from_text(text=prompt)]
        if audio is not None:
            if audio.is_inline:
                parts.append(genai_types.Part.from_bytes(data=audio.data, mime_type=audio.mime_type))
            else:
                parts.append(genai_types.Part.from_uri(file_uri=audio.uri, mime_type=audio.mime_type))
        return [genai_types.Content(role="user", parts=parts)]


_DEFAULT_CLIENT: GeminiLlmClient | None = None


def get_llm_client() -> GeminiLlmClient:
    """Return a lazily-instantiated Gemini client singleton."""

    global _DEFAULT_CLIENT
    if _DEFAULT_CLIENT is None:
        _DEFAULT_CLIENT = GeminiLlmClient()
    return _DEFAULT_CLIENT


__all__ = [
    "GeminiLlmClient",
    "GenerationError",
    "GenerationErrorKind",
    "classify_generation_error",
    "get_llm_client",
]
