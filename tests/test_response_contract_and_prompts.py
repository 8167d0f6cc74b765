import pytest
from pydantic import ValidationError

from scribe.pipelines.transcription.prompts import (
    SPEAKER_LABELS_INSTRUCTION,
    TIMESTAMPS_INSTRUCTION,
    build_instructions,
    build_review_prompt,
    build_summary_prompt,
    build_transcription_prompt,
)
from scribe.pipelines.transcription.types import GlobalSettings, ReviewSettings, TranscriptionOptions
from scribe.services.response_contract import ReviewResponse, SummaryResponse


def _options(**overrides):
    values = {"model": "gemini-2.5-flash", "subject": "Standup"}
    values.update(overrides)
    return TranscriptionOptions(**values)


def test_review_response_accepts_camel_case_keys():
    parsed = ReviewResponse.from_json('{"correctedTranscription": "Hi.", "changelog": "none"}')
    assert parsed.corrected_transcription == "Hi."
    assert parsed.changelog == "none"


def test_fenced_json_with_surrounding_text_is_unwrapped():
    payload = 'Here you go:\n```json\n{"summary": "Short."}\n```'
    assert SummaryResponse.from_json(payload).summary == "Short."


@pytest.mark.parametrize("payload", ["", "not json", "{}", '{"summary": 3}', '["summary"]'])
def test_invalid_summary_payloads_are_rejected(payload):
    with pytest.raises(ValidationError):
        SummaryResponse.from_json(payload)


def test_instructions_combine_standard_and_job_text():
    settings = GlobalSettings(standard_transcription_instructions="Always use UK spelling.")
    options = _options(transcription_instructions="Names: Ana, Bo.", speaker_labels=False)

    assert build_instructions(options, settings) == "Always use UK spelling.\n\nNames: Ana, Bo."


def test_instructions_append_speaker_and_timestamp_requests():
    options = _options(add_timestamps=True)
    instructions = build_instructions(options, GlobalSettings())

    assert instructions == SPEAKER_LABELS_INSTRUCTION + TIMESTAMPS_INSTRUCTION


def test_reference_texts_are_embedded_by_name():
    instructions = build_instructions(
        _options(speaker_labels=False),
        GlobalSettings(),
        {"glossary.txt": "  ATC: air traffic control \n", "empty.txt": "   "},
    )

    assert "--- glossary.txt ---\nATC: air traffic control" in instructions
    assert "empty.txt" not in instructions


def test_transcription_prompt_mentions_subject():
    prompt = build_transcription_prompt(_options(speaker_labels=False), GlobalSettings())
    assert prompt == "Transcribe the following audio. Subject: Standup. Instructions: "


def test_review_prompt_carries_settings_and_transcription():
    prompt = build_review_prompt(
        "helo world",
        ReviewSettings(correct_spelling=True, analyze_diarization=False, custom_review_prompt="Keep slang."),
    )

    assert "- Correct spelling: true" in prompt
    assert "- Analyze speaker diarization: false" in prompt
    assert "- Custom Review Prompt: Keep slang." in prompt
    assert "Original Transcription: helo world" in prompt
    assert '"correctedTranscription": string' in prompt


def test_summary_prompt_carries_transcription():
    prompt = build_summary_prompt("Hello world!")
    assert prompt.rstrip().endswith("Hello world!")
    assert '"summary": string' in prompt
