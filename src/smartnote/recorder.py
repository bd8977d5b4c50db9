"""Audio recording utilities."""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from .audio_utils import encode_frames, negotiate_format, rms_level
from .errors import InvalidTransition, PermissionDenied
from .models import AudioClip, AudioFormat, RecorderState

logger = logging.getLogger("smartnote")


def list_input_devices() -> List[Dict[str, Any]]:
    try:
        import sounddevice as sd
    except Exception as exc:  # pragma: no cover - environment-dependent
        raise RuntimeError("sounddevice is required for device detection.") from exc

    devices = sd.query_devices()
    return [d for d in devices if d.get("max_input_channels", 0) > 0]


def select_preferred_device(
    candidates: List[Dict[str, Any]],
    prefer_name: Optional[str] = None,
) -> Dict[str, Any]:
    if not candidates:
        raise PermissionDenied("No microphone found. Please connect an input device.")
    if prefer_name:
        preferred = [
            d for d in candidates if prefer_name.lower() in d.get("name", "").lower()
        ]
        if preferred:
            return preferred[0]
        logger.info(
            "Preferred device %r not found, using %s",
            prefer_name,
            candidates[0].get("name"),
        )
    return candidates[0]


def find_input_device(prefer_name: Optional[str] = None) -> Dict[str, Any]:
    candidates = list_input_devices()
    return select_preferred_device(candidates, prefer_name=prefer_name)


class AudioBackend(ABC):
    """Microphone capability used by the recorder."""

    @abstractmethod
    def open(self, on_chunk: Callable[[np.ndarray], None]) -> None:
        """Acquire the microphone and start delivering int16 blocks."""

    @abstractmethod
    def pause(self) -> None:
        ...

    @abstractmethod
    def resume(self) -> None:
        ...

    @abstractmethod
    def close(self) -> None:
        """Stop delivery and release the device. Safe to call twice."""


class SoundDeviceBackend(AudioBackend):
    def __init__(
        self,
        sample_rate_hz: int = 44100,
        channels: int = 1,
        device_name: Optional[str] = None,
        blocksize: int = 1024,
    ) -> None:
        self.sample_rate_hz = sample_rate_hz
        self.channels = channels
        self.device_name = device_name
        self.blocksize = blocksize
        self._stream = None

    def open(self, on_chunk: Callable[[np.ndarray], None]) -> None:
        try:
            import sounddevice as sd
        except Exception as exc:  # pragma: no cover - environment-dependent
            raise RuntimeError("sounddevice is required for recording.") from exc

        def _callback(indata, _frames, _time, status):
            if status:
                logger.debug("Input stream status: %s", status)
            on_chunk(indata.copy())

        stream = None
        try:
            device = find_input_device(self.device_name)
            stream = sd.InputStream(
                samplerate=self.sample_rate_hz,
                channels=self.channels,
                dtype="int16",
                device=device.get("index"),
                blocksize=self.blocksize,
                callback=_callback,
            )
            stream.start()
        except sd.PortAudioError as exc:
            if stream is not None:
                stream.close()
            raise PermissionDenied(
                details={"device": self.device_name, "error": str(exc)}
            ) from exc
        self._stream = stream
        logger.info("Microphone opened: %s", device.get("name"))

    def pause(self) -> None:
        if self._stream is not None:
            self._stream.stop()

    def resume(self) -> None:
        if self._stream is not None:
            self._stream.start()

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
        logger.info("Microphone released")


class _Ticker:
    def __init__(self, interval: float, callback: Callable[[], None]) -> None:
        self.interval = interval
        self.callback = callback
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._stop.set()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.callback()


class Recorder:
    """One capture session at a time over an AudioBackend.

    Elapsed time counts only while recording. Volume samples are emitted per
    captured block and only while recording; they are never stored.
    """

    def __init__(
        self,
        backend: AudioBackend,
        audio_format: Optional[AudioFormat] = None,
        preferred_formats: Optional[List[str]] = None,
        sample_rate_hz: int = 44100,
        channels: int = 1,
        on_volume_sample: Optional[Callable[[float], None]] = None,
        on_tick: Optional[Callable[[int], None]] = None,
        on_complete: Optional[Callable[[AudioClip], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        tick_interval: float = 1.0,
    ) -> None:
        self.backend = backend
        self.sample_rate_hz = sample_rate_hz
        self.channels = channels
        self.audio_format = audio_format or negotiate_format(
            preferred_formats, sample_rate_hz=sample_rate_hz
        )
        self.on_volume_sample = on_volume_sample
        self.on_tick = on_tick
        self.on_complete = on_complete
        self.clock = clock
        self.tick_interval = tick_interval
        self.error: Optional[str] = None

        self._lock = threading.Lock()
        self._state = RecorderState.IDLE
        self._chunks: List[np.ndarray] = []
        self._clip: Optional[AudioClip] = None
        self._level = 0.0
        self._elapsed = 0.0
        self._resumed_at: Optional[float] = None
        self._ticker: Optional[_Ticker] = None
        self._backend_open = False

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def clip(self) -> Optional[AudioClip]:
        return self._clip

    @property
    def level(self) -> float:
        return self._level

    @property
    def elapsed_seconds(self) -> int:
        with self._lock:
            total = self._elapsed
            if self._state == RecorderState.RECORDING and self._resumed_at is not None:
                total += self.clock() - self._resumed_at
        return int(total)

    def start(self) -> None:
        if self._state != RecorderState.IDLE:
            raise InvalidTransition("start recording", self._state.value)
        self.error = None
        self._chunks = []
        try:
            self.backend.open(self._on_chunk)
        except PermissionDenied as exc:
            self.error = exc.message
            logger.warning("Microphone unavailable: %s", exc.details or exc.message)
            raise
        with self._lock:
            self._backend_open = True
            self._elapsed = 0.0
            self._resumed_at = self.clock()
            self._state = RecorderState.RECORDING
        self._start_ticker()
        logger.info("Recording started (%s)", self.audio_format.mime_type)

    def pause(self) -> None:
        with self._lock:
            if self._state != RecorderState.RECORDING:
                return
            self._accumulate()
            self._state = RecorderState.PAUSED
            self._level = 0.0
        self._stop_ticker()
        self.backend.pause()
        logger.info("Recording paused at %ss", self.elapsed_seconds)

    def resume(self) -> None:
        with self._lock:
            if self._state != RecorderState.PAUSED:
                return
            self._resumed_at = self.clock()
            self._state = RecorderState.RECORDING
        self.backend.resume()
        self._start_ticker()
        logger.info("Recording resumed")

    def stop(self) -> AudioClip:
        with self._lock:
            if self._state not in (RecorderState.RECORDING, RecorderState.PAUSED):
                raise InvalidTransition("stop recording", self._state.value)
            if self._state == RecorderState.RECORDING:
                self._accumulate()
        self._release()

        with self._lock:
            chunks, self._chunks = self._chunks, []
        if chunks:
            frames = np.concatenate(chunks, axis=0)
        else:
            frames = np.zeros((0, self.channels), dtype=np.int16)
        try:
            data, used_format = encode_frames(
                frames, self.sample_rate_hz, self.channels, self.audio_format
            )
        except RuntimeError:
            logger.exception("Encoding the recording failed")
            with self._lock:
                self.error = "Failed to process the recording. Please try again."
                self._elapsed = 0.0
                self._level = 0.0
                self._state = RecorderState.IDLE
            raise
        clip = AudioClip(
            data=data,
            audio_format=used_format,
            sample_rate_hz=self.sample_rate_hz,
            channels=self.channels,
            duration_seconds=int(self._elapsed),
        )
        with self._lock:
            self._clip = clip
            self._state = RecorderState.STOPPED
            self._level = 0.0
        logger.info(
            "Recording stopped: %ss, %s bytes (%s)",
            clip.duration_seconds,
            clip.size,
            clip.mime_type,
        )
        if self.on_complete is not None:
            self.on_complete(clip)
        return clip

    def discard(self) -> None:
        self._release()
        with self._lock:
            self._chunks = []
            self._clip = None
            self._elapsed = 0.0
            self._resumed_at = None
            self._level = 0.0
            self._state = RecorderState.IDLE
        logger.info("Recording discarded")

    def close(self) -> None:
        self._release()
        with self._lock:
            if self._state in (RecorderState.RECORDING, RecorderState.PAUSED):
                self._chunks = []
                self._state = RecorderState.IDLE

    def __enter__(self) -> "Recorder":
        return self

    def __exit__(self, *_exc) -> None:
        self.close()

    def _accumulate(self) -> None:
        if self._resumed_at is not None:
            self._elapsed += self.clock() - self._resumed_at
            self._resumed_at = None

    def _on_chunk(self, block: np.ndarray) -> None:
        with self._lock:
            if self._state != RecorderState.RECORDING:
                return
            self._chunks.append(block)
            self._level = rms_level(block)
            level = self._level
        if self.on_volume_sample is not None:
            self.on_volume_sample(level)

    def _start_ticker(self) -> None:
        if self.on_tick is None:
            return
        self._stop_ticker()
        self._ticker = _Ticker(self.tick_interval, lambda: self.on_tick(self.elapsed_seconds))
        self._ticker.start()

    def _stop_ticker(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is not None:
            ticker.cancel()

    def _release(self) -> None:
        self._stop_ticker()
        if self._backend_open:
            self._backend_open = False
            self.backend.close()
