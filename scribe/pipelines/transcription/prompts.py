"""Prompt construction for the transcription, review and summary calls."""

from __future__ import annotations

from typing import Mapping

from .types import GlobalSettings, ReviewSettings, TranscriptionOptions

SPEAKER_LABELS_INSTRUCTION = "\nPlease identify and label different speakers (e.g., Speaker 1, Speaker 2)."
TIMESTAMPS_INSTRUCTION = "\nPlease include timestamps for key sections or speaker changes."


def build_instructions(
    options: TranscriptionOptions,
    global_settings: GlobalSettings,
    reference_texts: Mapping[str, str] | None = None,
) -> str:
    """Merge standard, per-job and reference instructions into one block."""

    instructions = options.transcription_instructions or ""
    standard = global_settings.standard_transcription_instructions
    if standard:
        instructions = f"{standard}\n\n{instructions}"
    if options.speaker_labels:
        instructions += SPEAKER_LABELS_INSTRUCTION
    if options.add_timestamps:
        instructions += TIMESTAMPS_INSTRUCTION

    if reference_texts:
        sections = [
            f"--- {name} ---\n{text.strip()}"
            for name, text in reference_texts.items()
            if text.strip()
        ]
        if sections:
            instructions += (
                "\n\nUse the following reference material for names, terms and spelling:\n"
                + "\n\n".join(sections)
            )
    return instructions


def build_transcription_prompt(
    options: TranscriptionOptions,
    global_settings: GlobalSettings,
    reference_texts: Mapping[str, str] | None = None,
) -> str:
    instructions = build_instructions(options, global_settings, reference_texts)
    return (
        f"Transcribe the following audio. Subject: {options.subject}. "
        f"Instructions: {instructions}"
    )


def build_review_prompt(transcription: str, review_settings: ReviewSettings) -> str:
    return f"""You are an AI expert tasked with reviewing and correcting transcriptions.

Given the original transcription, your goal is to provide a corrected transcription and a changelog summarizing the edits.

Here are the review settings:
- Correct spelling: {str(review_settings.correct_spelling).lower()}
- Analyze speaker diarization: {str(review_settings.analyze_diarization).lower()}
- Custom Review Prompt: {review_settings.custom_review_prompt}

Original Transcription: {transcription}

Follow these instructions:
1. Correct any spelling and grammatical errors.
2. If analyze speaker diarization is true, ensure the speaker labels are accurate and consistent.
3. Use the custom review prompt, if available, to guide the review process.

Output the corrected transcription and a detailed changelog.
Ensure the output is a JSON with the following schema: {{ "correctedTranscription": string, "changelog": string }}
Be very strict about escaping characters and do not include markdown fences."""


def build_summary_prompt(transcription: str) -> str:
    return f"""You are an expert summarizer. Provide a concise summary of the following transcribed text.

Your output MUST be a valid JSON object matching the schema {{ "summary": string }}. Do not include any other text or markdown fences.

Transcription:
{transcription}
"""


__all__ = [
    "SPEAKER_LABELS_INSTRUCTION",
    "TIMESTAMPS_INSTRUCTION",
    "build_instructions",
    "build_review_prompt",
    "build_summary_prompt",
    "build_transcription_prompt",
]
