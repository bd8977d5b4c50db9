"""Structured note generation via the AI endpoint."""

from __future__ import annotations

import logging

from .api_client import ApiClient
from .errors import ApiError, GenerationFailed, ValidationError
from .models import NoteType, StructuredNote

logger = logging.getLogger("smartnote")

GENERATE_PATH = "notes/generate"
EMPTY_INPUT_MESSAGE = "Please provide some text or record audio first."


def require_rough_text(rough_text: str) -> str:
    text = (rough_text or "").strip()
    if not text:
        raise ValidationError(EMPTY_INPUT_MESSAGE, "EMPTY_INPUT")
    return text


class NoteGenerator:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    def generate(self, rough_text: str, note_type: "str | NoteType") -> StructuredNote:
        require_rough_text(rough_text)
        kind = NoteType.parse(note_type)
        logger.info("Generating %s note from %s chars", kind.value, len(rough_text))
        try:
            response = self.api.post_json(
                GENERATE_PATH, {"transcription": rough_text, "noteType": kind.value}
            )
        except ApiError as exc:
            raise GenerationFailed(
                "Failed to generate note. Please check your connection.",
                details=exc.details,
            ) from exc

        data = response.get("data")
        note = data.get("note") if isinstance(data, dict) else None
        if not response.get("success") or not isinstance(note, dict):
            raise GenerationFailed(
                details={
                    "status_code": response.get("statusCode"),
                    "message": response.get("message"),
                }
            )
        return StructuredNote.from_payload(kind, note)
