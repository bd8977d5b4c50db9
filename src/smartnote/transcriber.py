"""Speech to text, remote endpoint or local Faster-Whisper."""

from __future__ import annotations

import io
import logging
import os
from typing import Optional

from .api_client import ApiClient
from .audio_utils import mime_type_for_path
from .config import TranscriptionConfig
from .errors import ApiError, TranscriptionFailed
from .models import AudioClip

logger = logging.getLogger("smartnote")

TRANSCRIBE_PATH = "audio/transcribe"


class RemoteTranscriber:
    def __init__(self, api: ApiClient) -> None:
        self.api = api

    def transcribe(self, clip: AudioClip) -> str:
        return self._upload(clip.filename, clip.data, clip.mime_type)

    def transcribe_file(self, path: str) -> str:
        with open(path, "rb") as handle:
            data = handle.read()
        return self._upload(os.path.basename(path), data, mime_type_for_path(path))

    def _upload(self, filename: str, data: bytes, mime_type: str) -> str:
        logger.info("Uploading %s for transcription (%s bytes)", mime_type, len(data))
        try:
            response = self.api.post_file(
                TRANSCRIBE_PATH, "audio", filename, data, mime_type
            )
        except ApiError as exc:
            raise TranscriptionFailed(details=exc.details) from exc

        payload = response.get("data")
        text = payload.get("transcription") if isinstance(payload, dict) else None
        if not response.get("success") or not isinstance(text, str):
            raise TranscriptionFailed(
                details={
                    "status_code": response.get("statusCode"),
                    "message": response.get("message"),
                }
            )
        logger.info("Transcription received (%s chars)", len(text))
        return text


class LocalTranscriber:
    def __init__(
        self,
        model_name: str = "small",
        language: str | None = None,
        device: str | None = None,
        compute_type: str | None = None,
    ) -> None:
        self.model_name = model_name
        self.language = language
        self.device = device
        self.compute_type = compute_type
        self._model = None

    def _load_model(self):
        if self._model is not None:
            return self._model
        try:
            from faster_whisper import WhisperModel
        except Exception as exc:  # pragma: no cover - optional dependency
            raise TranscriptionFailed(
                "faster-whisper is required for local transcription."
            ) from exc

        kwargs = {}
        if self.device:
            kwargs["device"] = self.device
        if self.compute_type:
            kwargs["compute_type"] = self.compute_type
        self._model = WhisperModel(self.model_name, **kwargs)
        return self._model

    def transcribe(self, clip: AudioClip) -> str:
        return self._run(io.BytesIO(clip.data))

    def transcribe_file(self, path: str) -> str:
        return self._run(path)

    def _run(self, source) -> str:
        model = self._load_model()
        try:
            segments, _info = model.transcribe(source, language=self.language)
            text = " ".join(seg.text.strip() for seg in segments if seg.text.strip())
        except Exception as exc:
            logger.exception("Local transcription failed")
            raise TranscriptionFailed(details={"error": str(exc)}) from exc
        logger.info("Local transcription finished (%s chars)", len(text))
        return text


def build_transcriber(
    config: TranscriptionConfig, api: Optional[ApiClient] = None
):
    if config.backend == "local":
        return LocalTranscriber(
            model_name=config.whisper_model,
            language=config.language,
            device=config.device,
            compute_type=config.compute_type,
        )
    if api is None:
        raise ValueError("An ApiClient is required for remote transcription.")
    return RemoteTranscriber(api)
