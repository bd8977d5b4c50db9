"""Data models for SmartNote."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .errors import ValidationError


class NoteType(str, Enum):
    SOAP = "SOAP"
    BAP = "BAP"
    PROGRESS = "Progress"

    @classmethod
    def parse(cls, value: "str | NoteType") -> "NoteType":
        if isinstance(value, NoteType):
            return value
        text = (value or "").strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        raise ValueError(f"Unknown note type: {value!r}")


NOTE_FIELDS: Dict[NoteType, Tuple[str, ...]] = {
    NoteType.SOAP: ("subjective", "objective", "assessment", "plan"),
    NoteType.BAP: ("behavior", "assessment", "plan"),
    NoteType.PROGRESS: ("progressNote",),
}

NOTE_DESCRIPTIONS: Dict[NoteType, str] = {
    NoteType.SOAP: "Subjective, Objective, Assessment, Plan",
    NoteType.BAP: "Behavior, Assessment, Plan",
    NoteType.PROGRESS: "Progress documentation",
}


def field_label(name: str) -> str:
    """progressNote -> Progress Note"""
    spaced = re.sub(r"([A-Z])", r" \1", name).strip()
    return " ".join(word.capitalize() for word in spaced.split())


@dataclass
class StructuredNote:
    note_type: NoteType
    fields: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def empty(cls, note_type: "str | NoteType") -> "StructuredNote":
        kind = NoteType.parse(note_type)
        return cls(note_type=kind, fields={name: "" for name in NOTE_FIELDS[kind]})

    @classmethod
    def from_payload(
        cls, note_type: "str | NoteType", data: Optional[Dict[str, Any]]
    ) -> "StructuredNote":
        note = cls.empty(note_type)
        for name in note.field_names:
            value = (data or {}).get(name)
            if value is None:
                continue
            note.fields[name] = value if isinstance(value, str) else str(value)
        return note

    @property
    def field_names(self) -> Tuple[str, ...]:
        return NOTE_FIELDS[self.note_type]

    def get(self, name: str) -> str:
        return self.fields.get(name, "")

    def set(self, name: str, value: str) -> None:
        if name not in self.field_names:
            raise ValidationError(
                f"'{name}' is not a {self.note_type.value} note field.",
                "UNKNOWN_FIELD",
                {"field": name, "note_type": self.note_type.value},
            )
        self.fields[name] = value or ""

    def is_blank(self) -> bool:
        return not any((self.fields.get(name) or "").strip() for name in self.field_names)

    def labels(self) -> Dict[str, str]:
        return {name: field_label(name) for name in self.field_names}

    def to_payload(self) -> Dict[str, str]:
        return {name: self.fields.get(name, "") for name in self.field_names}

    def copy(self) -> "StructuredNote":
        return StructuredNote(note_type=self.note_type, fields=dict(self.fields))


@dataclass(frozen=True)
class AudioFormat:
    mime_type: str
    extension: str
    sf_format: str
    sf_subtype: str


@dataclass
class AudioClip:
    data: bytes
    audio_format: AudioFormat
    sample_rate_hz: int
    channels: int
    duration_seconds: int

    @property
    def mime_type(self) -> str:
        return self.audio_format.mime_type

    @property
    def filename(self) -> str:
        return f"recording.{self.audio_format.extension}"

    @property
    def size(self) -> int:
        return len(self.data)


class RecorderState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PAUSED = "paused"
    STOPPED = "stopped"


class PipelineState(str, Enum):
    CAPTURING = "capturing"
    TRANSCRIBING = "transcribing"
    GENERATING = "generating"
    REVIEW = "review"
    SAVING = "saving"
    DONE = "done"
