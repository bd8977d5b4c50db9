"""Configuration handling."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional
import yaml

from .models import NoteType

DEFAULT_CONFIG_PATH = "smartnote_config.yml"


@dataclass
class ApiConfig:
    base_url: str = "http://localhost:3002/api/v1/"
    access_token: Optional[str] = None
    timeout_seconds: float = 30.0
    organization_id: Optional[str] = None
    clinic_id: Optional[str] = None


@dataclass
class AudioConfig:
    sample_rate_hz: int = 44100
    channels: int = 1
    device_name: Optional[str] = None
    preferred_formats: List[str] = field(
        default_factory=lambda: ["audio/ogg", "audio/mpeg", "audio/wav"]
    )


@dataclass
class TranscriptionConfig:
    backend: str = "remote"
    whisper_model: str = "small"
    language: Optional[str] = None
    device: Optional[str] = None
    compute_type: Optional[str] = None


@dataclass
class NotesConfig:
    default_note_type: NoteType = NoteType.SOAP
    auto_generate: bool = True


@dataclass
class Config:
    api: ApiConfig = field(default_factory=ApiConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    notes: NotesConfig = field(default_factory=NotesConfig)
    log_dir: str = "logs"
    debug_logging: bool = False


def load_config(path: str) -> Config:
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    api = ApiConfig(**data.get("api", {}))
    audio = AudioConfig(**data.get("audio", {}))
    transcription = TranscriptionConfig(**data.get("transcription", {}))
    if transcription.backend not in ("remote", "local"):
        raise ValueError(f"Unknown transcription backend: {transcription.backend!r}")

    notes_data = dict(data.get("notes", {}))
    notes = NotesConfig(
        default_note_type=NoteType.parse(notes_data.get("default_note_type", "SOAP")),
        auto_generate=bool(notes_data.get("auto_generate", True)),
    )

    return Config(
        api=api,
        audio=audio,
        transcription=transcription,
        notes=notes,
        log_dir=data.get("log_dir", "logs"),
        debug_logging=bool(data.get("debug_logging", False)),
    )


def load_config_or_default(path: Optional[str]) -> Config:
    if path and os.path.exists(path):
        return load_config(path)
    return Config()


def save_config(path: str, config: Config) -> None:
    data = {
        "api": {
            "base_url": config.api.base_url,
            "access_token": config.api.access_token,
            "timeout_seconds": config.api.timeout_seconds,
            "organization_id": config.api.organization_id,
            "clinic_id": config.api.clinic_id,
        },
        "audio": {
            "sample_rate_hz": config.audio.sample_rate_hz,
            "channels": config.audio.channels,
            "device_name": config.audio.device_name,
            "preferred_formats": list(config.audio.preferred_formats),
        },
        "transcription": {
            "backend": config.transcription.backend,
            "whisper_model": config.transcription.whisper_model,
            "language": config.transcription.language,
            "device": config.transcription.device,
            "compute_type": config.transcription.compute_type,
        },
        "notes": {
            "default_note_type": config.notes.default_note_type.value,
            "auto_generate": config.notes.auto_generate,
        },
        "log_dir": config.log_dir,
        "debug_logging": config.debug_logging,
    }
    with open(path, "w", encoding="utf-8") as handle:
        yaml.safe_dump(data, handle, sort_keys=False)
