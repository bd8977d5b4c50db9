"""Note persistence against a visit."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict

from .api_client import ApiClient
from .errors import ApiError, InvalidTransition, SaveFailed, ValidationError
from .models import NoteType, StructuredNote

logger = logging.getLogger("smartnote")

CREATE_NOTE_PATH = "patients/notes"
EMPTY_NOTE_MESSAGE = "Please fill in at least one field before saving."


def validate_note(visit_id: str, note: StructuredNote, additional_notes: str = "") -> None:
    if not (visit_id or "").strip():
        raise ValidationError("A visit is required to save a note.", "MISSING_VISIT")
    if note.is_blank() and not (additional_notes or "").strip():
        raise ValidationError(EMPTY_NOTE_MESSAGE, "EMPTY_NOTE")


def build_note_payload(
    visit_id: str, note: StructuredNote, additional_notes: str = ""
) -> Dict[str, Any]:
    # Treatment codes, details, goals and outcome measures are filled elsewhere.
    return {
        "visit_id": visit_id,
        "note_type": note.note_type.value,
        "note_data": note.to_payload(),
        "additional_notes": additional_notes or "",
        "treatment_codes": [],
        "treatment_details": {},
        "goals": {},
        "outcome_measures": {},
    }


class NoteStore:
    def __init__(self, api: ApiClient) -> None:
        self.api = api
        self._in_flight = threading.Lock()

    def save(
        self,
        visit_id: str,
        note_type: "str | NoteType",
        note: StructuredNote,
        additional_notes: str = "",
    ) -> Dict[str, Any]:
        kind = NoteType.parse(note_type)
        if note.note_type != kind:
            note = StructuredNote.from_payload(kind, note.to_payload())
        validate_note(visit_id, note, additional_notes)
        payload = build_note_payload(visit_id, note, additional_notes)

        if not self._in_flight.acquire(blocking=False):
            raise InvalidTransition("save", "saving")
        try:
            logger.info("Saving %s note for visit %s", kind.value, visit_id)
            try:
                response = self.api.post_json(CREATE_NOTE_PATH, payload)
            except ApiError as exc:
                raise SaveFailed(
                    "Failed to save note. Please check your connection.",
                    details=exc.details,
                ) from exc
        finally:
            self._in_flight.release()

        if not response.get("success"):
            raise SaveFailed(
                details={
                    "status_code": response.get("statusCode"),
                    "message": response.get("message"),
                }
            )
        logger.info("Note saved for visit %s", visit_id)
        return response
