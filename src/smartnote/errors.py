"""Error types raised by the note capture pipeline."""

from __future__ import annotations

from typing import Any, Dict, Optional


class SmartNoteError(Exception):
    """Base error. `message` is safe to show to the user."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class PermissionDenied(SmartNoteError):
    """Microphone access refused or no usable input device."""

    def __init__(
        self,
        message: str = "Unable to access microphone. Please check your permissions.",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, "PERMISSION_DENIED", details)


class TranscriptionFailed(SmartNoteError):
    def __init__(
        self,
        message: str = "Failed to transcribe audio. Please try again.",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, "TRANSCRIPTION_FAILED", details)


class GenerationFailed(SmartNoteError):
    def __init__(
        self,
        message: str = "Failed to generate note. Please try again.",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, "GENERATION_FAILED", details)


class SaveFailed(SmartNoteError):
    def __init__(
        self,
        message: str = "Failed to save note. Please try again.",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, "SAVE_FAILED", details)


class ValidationError(SmartNoteError):
    """Local precondition failed; nothing was sent."""


class InvalidTransition(SmartNoteError):
    def __init__(self, action: str, state: str) -> None:
        message = f"Cannot {action} while {state}"
        super().__init__(message, "INVALID_TRANSITION", {"action": action, "state": state})


class ApiError(SmartNoteError):
    """Transport failure or undecodable response."""
