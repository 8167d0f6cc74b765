import asyncio
from types import SimpleNamespace

import httpx
import pytest
from google.genai import errors as genai_errors

from scribe.pipelines.transcription.types import AudioSource
from scribe.services.llm_client import (
    GeminiLlmClient,
    GenerationError,
    GenerationErrorKind,
    classify_generation_error,
)
from scribe.services.response_contract import SummaryResponse


def _api_error(cls, code, message):
    return cls(code, {"error": {"code": code, "message": message, "status": "X"}})


@pytest.mark.parametrize(
    ("error", "kind"),
    [
        (_api_error(genai_errors.ServerError, 503, "The model is overloaded."), GenerationErrorKind.OVERLOADED),
        (_api_error(genai_errors.ServerError, 500, "Internal error"), GenerationErrorKind.OVERLOADED),
        (_api_error(genai_errors.ClientError, 429, "Too many requests"), GenerationErrorKind.RATE_LIMITED),
        (
            _api_error(genai_errors.ClientError, 429, "You exceeded your current quota"),
            GenerationErrorKind.PERMANENT,
        ),
        (_api_error(genai_errors.ClientError, 400, "Unsupported audio"), GenerationErrorKind.PERMANENT),
        (httpx.ConnectError("connection reset"), GenerationErrorKind.OVERLOADED),
        (ValueError("bad"), GenerationErrorKind.PERMANENT),
    ],
)
def test_classify_generation_error(error, kind):
    assert classify_generation_error(error).kind is kind


def test_retryable_kinds():
    assert GenerationError(GenerationErrorKind.OVERLOADED, "x").retryable
    assert GenerationError(GenerationErrorKind.RATE_LIMITED, "x").retryable
    assert not GenerationError(GenerationErrorKind.MALFORMED, "x").retryable
    assert not GenerationError(GenerationErrorKind.PERMANENT, "x").retryable


def test_permanent_error_keeps_provider_message():
    error = classify_generation_error(_api_error(genai_errors.ClientError, 400, "Unsupported audio"))
    assert str(error) == "Unsupported audio"
    assert error.status_code == 400


class _Models:
    def __init__(self, chunks=(), *, fail_after=None, start_error=None, json_text=""):
        self.chunks = chunks
        self.fail_after = fail_after
        self.start_error = start_error
        self.json_text = json_text
        self.calls = []

    async def generate_content_stream(self, *, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.start_error is not None:
            raise self.start_error

        async def iterate():
            for chunk in self.chunks:
                yield SimpleNamespace(text=chunk)
            if self.fail_after is not None:
                raise self.fail_after

        return iterate()

    async def generate_content(self, *, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        return SimpleNamespace(text=self.json_text)


def _client(models):
    return GeminiLlmClient(client=SimpleNamespace(aio=SimpleNamespace(models=models)))


async def _collect(stream):
    return [fragment async for fragment in stream]


def test_stream_text_skips_empty_chunks_and_attaches_inline_audio():
    models = _Models(chunks=("Hello ", None, "", "world."))
    client = _client(models)
    audio = AudioSource(mime_type="audio/mpeg", data=b"abc")

    async def scenario():
        stream = await client.stream_text(model="gemini-2.5-flash", prompt="Transcribe", audio=audio)
        return await _collect(stream)

    assert asyncio.run(scenario()) == ["Hello ", "world."]
    parts = models.calls[0]["contents"][0].parts
    assert parts[0].text == "Transcribe"
    assert parts[1].inline_data.data == b"abc"
    assert parts[1].inline_data.mime_type == "audio/mpeg"


def test_stream_text_references_remote_audio_by_uri():
    models = _Models(chunks=("ok",))
    audio = AudioSource(mime_type="audio/wav", uri="https://signed.example.com/a.wav")

    async def scenario():
        stream = await _client(models).stream_text(model="m", prompt="p", audio=audio)
        return await _collect(stream)

    asyncio.run(scenario())
    part = models.calls[0]["contents"][0].parts[1]
    assert part.file_data.file_uri == "https://signed.example.com/a.wav"


def test_stream_start_failure_is_classified():
    models = _Models(start_error=_api_error(genai_errors.ServerError, 503, "overloaded"))

    with pytest.raises(GenerationError) as excinfo:
        asyncio.run(_client(models).stream_text(model="m", prompt="p"))
    assert excinfo.value.kind is GenerationErrorKind.OVERLOADED


def test_mid_stream_failure_follows_delivered_fragments():
    models = _Models(
        chunks=("partial",),
        fail_after=_api_error(genai_errors.ClientError, 400, "Request payload invalid"),
    )
    seen = []

    async def scenario():
        stream = await _client(models).stream_text(model="m", prompt="p")
        async for fragment in stream:
            seen.append(fragment)

    with pytest.raises(GenerationError) as excinfo:
        asyncio.run(scenario())
    assert seen == ["partial"]
    assert excinfo.value.kind is GenerationErrorKind.PERMANENT


def test_generate_json_requests_schema_output():
    models = _Models(json_text='{"summary": "short"}')

    text = asyncio.run(
        _client(models).generate_json(model="m", prompt="Summarize", schema=SummaryResponse)
    )

    assert text == '{"summary": "short"}'
    config = models.calls[0]["config"]
    assert config.response_mime_type == "application/json"
    assert config.response_schema is SummaryResponse


def test_generate_json_returns_empty_string_for_blank_response():
    models = _Models(json_text=None)
    assert asyncio.run(_client(models).generate_json(model="m", prompt="p", schema=SummaryResponse)) == ""
