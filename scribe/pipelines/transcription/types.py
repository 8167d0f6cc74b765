"""Typed containers shared across the transcription pipeline.

These models live in their own module so the stages (`upload`,
`transcription`, `review`, `summary`, `persistence`) and the HTTP views can
import them without creating circular dependencies.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import BinaryIO, Optional

from pydantic import BaseModel, Field, field_validator


class ReferenceFile(BaseModel):
    """Name and size of a reference document; its content is never persisted."""

    name: str
    size: int = Field(ge=0)

    model_config = {"frozen": True, "extra": "forbid"}


class ReviewSettings(BaseModel):
    correct_spelling: bool = Field(default=True, alias="correctSpelling")
    analyze_diarization: bool = Field(default=False, alias="analyzeDiarization")
    custom_review_prompt: str = Field(default="", alias="customReviewPrompt")

    model_config = {"populate_by_name": True, "frozen": True, "extra": "ignore"}


class GlobalSettings(BaseModel):
    """User-scoped settings snapshotted into every job at submission."""

    standard_transcription_instructions: str = Field(
        default="", alias="standardTranscriptionInstructions"
    )
    review_settings: ReviewSettings = Field(
        default_factory=ReviewSettings, alias="reviewSettings"
    )
    disable_file_size_limit: bool = Field(default=False, alias="disableFileSizeLimit")

    model_config = {"populate_by_name": True, "frozen": True, "extra": "ignore"}


class TranscriptionOptions(BaseModel):
    """Immutable per-job options. Unknown fields are rejected."""

    model: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    transcription_instructions: str = Field(default="", alias="transcriptionInstructions")
    speaker_labels: bool = Field(default=True, alias="speakerLabels")
    add_timestamps: bool = Field(default=False, alias="addTimestamps")
    generate_summary: bool = Field(default=True, alias="generateSummary")
    review: bool = True
    reference_files: tuple[ReferenceFile, ...] = Field(default=(), alias="referenceFiles")

    model_config = {"populate_by_name": True, "frozen": True, "extra": "forbid"}

    @field_validator("subject")
    @classmethod
    def strip_subject(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Subject is required.")
        return stripped


@dataclass(frozen=True)
class AudioSource:
    """Audio handed to the model: inline bytes or a URL it can fetch."""

    mime_type: str
    data: Optional[bytes] = None
    uri: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.data is None) == (self.uri is None):
            raise ValueError("AudioSource needs exactly one of data or uri.")

    @property
    def is_inline(self) -> bool:
        return self.data is not None


@dataclass
class SourceFile:
    """The job's local copy of the uploaded audio."""

    name: str
    size: int
    content_type: str
    stream: BinaryIO
    reference_texts: dict[str, str] = field(default_factory=dict)

    @property
    def safe_name(self) -> str:
        base = os.path.basename(self.name.replace("\\", "/")).strip()
        return base or "audio"

    def read_all(self) -> bytes:
        self.stream.seek(0)
        return self.stream.read()

    def close(self) -> None:
        if not self.stream.closed:
            self.stream.close()


__all__ = [
    "AudioSource",
    "GlobalSettings",
    "ReferenceFile",
    "ReviewSettings",
    "SourceFile",
    "TranscriptionOptions",
]
