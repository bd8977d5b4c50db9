"""Audio helpers."""

from __future__ import annotations

import io
import logging
import os
from typing import Callable, Iterable, List, Optional

import numpy as np
import soundfile as sf

from .models import AudioClip, AudioFormat

logger = logging.getLogger("smartnote")

OGG_OPUS = AudioFormat("audio/ogg", "ogg", "OGG", "OPUS")
OGG_VORBIS = AudioFormat("audio/ogg", "ogg", "OGG", "VORBIS")
MP3 = AudioFormat("audio/mpeg", "mp3", "MP3", "MPEG_LAYER_III")
WAV = AudioFormat("audio/wav", "wav", "WAV", "PCM_16")

CANDIDATE_FORMATS: List[AudioFormat] = [OGG_OPUS, OGG_VORBIS, MP3, WAV]

OPUS_SAMPLE_RATES = (8000, 12000, 16000, 24000, 48000)

EXTENSION_MIME_TYPES = {
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".m4a": "audio/m4a",
    ".ogg": "audio/ogg",
    ".webm": "audio/webm",
}


def _libsndfile_can_write(audio_format: AudioFormat) -> bool:
    return bool(sf.check_format(audio_format.sf_format, audio_format.sf_subtype))


def negotiate_format(
    preferred_mime_types: Optional[Iterable[str]] = None,
    sample_rate_hz: int = 44100,
    checker: Optional[Callable[[AudioFormat], bool]] = None,
) -> AudioFormat:
    """Pick the first preferred encoding this machine can write.

    WAV is returned when nothing in the preference list is usable.
    """
    can_write = checker or _libsndfile_can_write
    for mime_type in preferred_mime_types or [f.mime_type for f in CANDIDATE_FORMATS]:
        for candidate in CANDIDATE_FORMATS:
            if candidate.mime_type != mime_type.lower():
                continue
            if candidate.sf_subtype == "OPUS" and sample_rate_hz not in OPUS_SAMPLE_RATES:
                continue
            if can_write(candidate):
                return candidate
    logger.info("No preferred audio encoding available, falling back to WAV")
    return WAV


def encode_frames(
    frames: np.ndarray,
    sample_rate_hz: int,
    channels: int,
    audio_format: AudioFormat,
) -> tuple[bytes, AudioFormat]:
    if frames.dtype != np.int16:
        frames = frames.astype(np.int16)
    frames = frames.reshape(-1, channels)

    buffer = io.BytesIO()
    try:
        sf.write(
            buffer,
            frames,
            sample_rate_hz,
            format=audio_format.sf_format,
            subtype=audio_format.sf_subtype,
        )
    except RuntimeError as exc:
        if audio_format == WAV:
            raise
        logger.warning("Encoding as %s failed (%s), using WAV", audio_format.mime_type, exc)
        return encode_frames(frames, sample_rate_hz, channels, WAV)
    return buffer.getvalue(), audio_format


def rms_level(block: np.ndarray) -> float:
    if block is None or block.size == 0:
        return 0.0
    data = block.astype("float32")
    if np.issubdtype(block.dtype, np.integer):
        data = data / 32768.0
    rms = float((data**2).mean() ** 0.5)
    return min(max(rms, 0.0), 1.0)


def mime_type_for_path(path: str) -> str:
    ext = os.path.splitext(path)[1].lower()
    return EXTENSION_MIME_TYPES.get(ext, "application/octet-stream")


def play_clip(clip: AudioClip) -> None:
    try:
        import sounddevice as sd
    except Exception as exc:  # pragma: no cover - environment-dependent
        raise RuntimeError("sounddevice is required for playback.") from exc

    data, sample_rate = sf.read(io.BytesIO(clip.data), dtype="int16")
    sd.play(data, sample_rate)
    sd.wait()
