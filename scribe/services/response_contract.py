"""Pydantic models for validating structured LLM JSON responses.

Review and summary calls both run through these schemas so downstream code
receives normalized, type-safe objects instead of raw model text.
"""

from __future__ import annotations

from typing import Type, TypeVar

from pydantic import BaseModel, Field

ContractT = TypeVar("ContractT", bound="StructuredContract")


class StructuredContract(BaseModel):
    model_config = {"populate_by_name": True, "extra": "ignore"}

    @classmethod
    def from_json(cls: Type[ContractT], payload: str) -> ContractT:
        """Validate a raw model reply, tolerating Markdown fences around the JSON."""

        return cls.model_validate_json(_clean_json_payload(payload))


class ReviewResponse(StructuredContract):
    corrected_transcription: str = Field(alias="correctedTranscription")
    changelog: str


class SummaryResponse(StructuredContract):
    summary: str


def _clean_json_payload(payload: str) -> str:
    """Strip Markdown code fences and keep the outermost JSON object."""

    if not payload:
        return ""

    cleaned = payload.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    cleaned = cleaned.strip()

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        cleaned = cleaned[start : end + 1]
    return cleaned


__all__ = ["ReviewResponse", "StructuredContract", "SummaryResponse"]
