"""Smart note session: capture, generate, review, save.

A session moves through one explicit state at a time::

    capturing -> transcribing -> capturing
    capturing -> generating -> review -> saving -> done

Failures of a remote step return to the state the step was started from
with the user's input untouched and a message in ``session.error``.
``cancel()`` ends the session from any state; a network result that arrives
after a cancel is dropped.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Tuple

from .errors import (
    GenerationFailed,
    InvalidTransition,
    SaveFailed,
    TranscriptionFailed,
    ValidationError,
)
from .generator import EMPTY_INPUT_MESSAGE, NoteGenerator, require_rough_text
from .models import AudioClip, NoteType, PipelineState, StructuredNote
from .notes_store import NoteStore, validate_note

logger = logging.getLogger("smartnote")

BUSY_STATES = (
    PipelineState.TRANSCRIBING,
    PipelineState.GENERATING,
    PipelineState.SAVING,
)


class SmartNoteSession:
    def __init__(
        self,
        visit_id: str,
        transcriber,
        generator: NoteGenerator,
        store: NoteStore,
        note_type: "str | NoteType" = NoteType.SOAP,
        on_note_created: Optional[Callable[[], None]] = None,
        on_cancel: Optional[Callable[[], None]] = None,
        auto_generate: bool = True,
    ) -> None:
        self.visit_id = visit_id
        self.transcriber = transcriber
        self.generator = generator
        self.store = store
        self.on_note_created = on_note_created
        self.on_cancel = on_cancel
        self.auto_generate = auto_generate

        self.note_type = NoteType.parse(note_type)
        self.rough_text = ""
        self.clip: Optional[AudioClip] = None
        self.note: Optional[StructuredNote] = None
        self.generated = False
        self.additional_notes = ""
        self.error: Optional[str] = None

        self._state = PipelineState.CAPTURING
        self._lock = threading.RLock()

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._state in BUSY_STATES

    def _require(self, action: str, *states: PipelineState) -> None:
        if self._state not in states:
            raise InvalidTransition(action, self._state.value)

    def _move(self, new_state: PipelineState) -> None:
        logger.info("Session %s: %s -> %s", self.visit_id, self._state.value, new_state.value)
        self._state = new_state

    # capturing

    def select_note_type(self, note_type: "str | NoteType") -> None:
        with self._lock:
            self._require("change note type", PipelineState.CAPTURING)
            self.note_type = NoteType.parse(note_type)

    def set_rough_text(self, text: str) -> None:
        with self._lock:
            self._require("edit text", PipelineState.CAPTURING)
            self.rough_text = text or ""

    def submit_recording(self, clip: AudioClip, auto_generate: Optional[bool] = None) -> bool:
        with self._lock:
            self._require("transcribe", PipelineState.CAPTURING)
            self.clip = clip
            self.error = None
            self._move(PipelineState.TRANSCRIBING)

        try:
            text = self.transcriber.transcribe(clip)
        except TranscriptionFailed as exc:
            logger.warning("Transcription failed: %s %s", exc.message, exc.details)
            with self._lock:
                if self._state != PipelineState.TRANSCRIBING:
                    return False
                self.error = exc.message
                self._move(PipelineState.CAPTURING)
            return False

        with self._lock:
            if self._state != PipelineState.TRANSCRIBING:
                logger.info("Transcription result dropped after cancel")
                return False
            self._move(PipelineState.CAPTURING)
            if not (text or "").strip():
                self.error = EMPTY_INPUT_MESSAGE
                return False
            self.rough_text = text
            if not (self.auto_generate if auto_generate is None else auto_generate):
                return True
            request = self._begin_generation()

        if request is None:
            return False
        return self._run_generation(*request)

    def generate(self) -> bool:
        with self._lock:
            self._require("generate", PipelineState.CAPTURING)
            request = self._begin_generation()
        if request is None:
            return False
        return self._run_generation(*request)

    def _begin_generation(self) -> Optional[Tuple[str, NoteType]]:
        # Caller holds the lock.
        if self._state != PipelineState.CAPTURING:
            return None
        try:
            text = require_rough_text(self.rough_text)
        except ValidationError as exc:
            self.error = exc.message
            return None
        self.error = None
        self._move(PipelineState.GENERATING)
        return text, self.note_type

    def _run_generation(self, text: str, note_type: NoteType) -> bool:
        try:
            note = self.generator.generate(text, note_type)
        except GenerationFailed as exc:
            logger.warning("Generation failed: %s %s", exc.message, exc.details)
            with self._lock:
                if self._state != PipelineState.GENERATING:
                    return False
                self.error = exc.message
                self._move(PipelineState.CAPTURING)
            return False

        with self._lock:
            if self._state != PipelineState.GENERATING:
                logger.info("Generated note dropped after cancel")
                return False
            self.note = note
            self.generated = True
            self._move(PipelineState.REVIEW)
        return True

    def enter_manually(self) -> None:
        with self._lock:
            self._require("enter note manually", PipelineState.CAPTURING)
            self.note = StructuredNote.empty(self.note_type)
            self.generated = False
            self.error = None
            self._move(PipelineState.REVIEW)

    # review

    def edit_field(self, name: str, value: str) -> None:
        with self._lock:
            self._require("edit note", PipelineState.REVIEW)
            self.note.set(name, value)

    def set_additional_notes(self, text: str) -> None:
        with self._lock:
            self._require("edit additional notes", PipelineState.REVIEW)
            self.additional_notes = text or ""

    def back_to_edit(self) -> None:
        with self._lock:
            self._require("go back", PipelineState.REVIEW)
            self.error = None
            self._move(PipelineState.CAPTURING)

    def start_over(self) -> None:
        with self._lock:
            self._require("start over", PipelineState.REVIEW, PipelineState.CAPTURING)
            self.rough_text = ""
            self.clip = None
            self.note = None
            self.generated = False
            self.additional_notes = ""
            self.error = None
            if self._state != PipelineState.CAPTURING:
                self._move(PipelineState.CAPTURING)

    def save(self) -> bool:
        with self._lock:
            self._require("save", PipelineState.REVIEW)
            try:
                validate_note(self.visit_id, self.note, self.additional_notes)
            except ValidationError as exc:
                self.error = exc.message
                return False
            note = self.note.copy()
            additional_notes = self.additional_notes
            self.error = None
            self._move(PipelineState.SAVING)

        try:
            self.store.save(self.visit_id, note.note_type, note, additional_notes)
        except SaveFailed as exc:
            logger.warning("Save failed: %s %s", exc.message, exc.details)
            with self._lock:
                if self._state != PipelineState.SAVING:
                    return False
                self.error = exc.message
                self._move(PipelineState.REVIEW)
            return False

        with self._lock:
            if self._state != PipelineState.SAVING:
                return False
            self._move(PipelineState.DONE)
        if self.on_note_created is not None:
            self.on_note_created()
        return True

    # any state

    def cancel(self) -> None:
        with self._lock:
            if self._state == PipelineState.DONE:
                return
            self._move(PipelineState.DONE)
        if self.on_cancel is not None:
            self.on_cancel()
