"""Voice capture: MIME negotiation and chunk accumulation for one recording.

The microphone itself lives in the client; this module owns the pieces a
recording goes through before it is handed to the session as an ``AudioClip``.
Failures here are local and are reported at the recording step only.
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Optional


logger = logging.getLogger(__name__)

# Preferred recorder formats, best first
PREFERRED_MIME_TYPES = [
    "audio/webm;codecs=opus",
    "audio/webm",
    "audio/mp4",
]
FALLBACK_MIME_TYPE = "audio/wav"

ALLOWED_AUDIO_TYPES = [
    "audio/webm",
    "audio/mp4",
    "audio/mpeg",
    "audio/wav",
    "audio/ogg",
    "audio/flac",
    "audio/m4a",
]

EXTENSIONS = {
    "audio/webm": "webm",
    "audio/mp4": "mp4",
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
    "audio/ogg": "ogg",
    "audio/flac": "flac",
    "audio/m4a": "m4a",
}


class RecordingErrorKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    NO_MICROPHONE = "no_microphone"
    UNSUPPORTED = "unsupported"
    FAILED = "failed"


RECORDING_MESSAGES = {
    RecordingErrorKind.PERMISSION_DENIED: "Microphone permission denied. Please allow microphone access and try again.",
    RecordingErrorKind.NO_MICROPHONE: "No microphone found. Please connect a microphone and try again.",
    RecordingErrorKind.UNSUPPORTED: "Audio recording is not supported on this device.",
    RecordingErrorKind.FAILED: "Recording error occurred",
}


class RecordingError(Exception):
    def __init__(self, kind: RecordingErrorKind, detail: Optional[str] = None):
        self.kind = RecordingErrorKind(kind)
        message = RECORDING_MESSAGES[self.kind]
        if detail and self.kind is RecordingErrorKind.FAILED:
            message = f"Recording failed: {detail}"
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class AudioClip:
    data: bytes
    mime_type: str
    duration: float = 0.0

    @property
    def filename(self) -> str:
        return f"recording.{extension_for(self.mime_type)}"


def base_mime_type(mime_type: str) -> str:
    """Strip codec parameters: ``audio/webm;codecs=opus`` -> ``audio/webm``"""
    return mime_type.split(";", 1)[0].strip().lower()


def is_supported_audio_type(mime_type: Optional[str]) -> bool:
    if not mime_type:
        return False
    base = base_mime_type(mime_type)
    return base in ALLOWED_AUDIO_TYPES or base.startswith("audio/")


def extension_for(mime_type: str) -> str:
    return EXTENSIONS.get(base_mime_type(mime_type), "webm")


def choose_mime_type(supported: Iterable[str]) -> str:
    """Pick the best recorder format the client says it can produce"""
    available = {m.lower() for m in supported}
    for candidate in PREFERRED_MIME_TYPES:
        if candidate in available:
            return candidate
    return FALLBACK_MIME_TYPE


def format_duration(seconds: float) -> str:
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"


class Recorder:
    """Accumulates audio chunks between ``start`` and ``stop``."""

    def __init__(
        self,
        supported_types: Optional[Iterable[str]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._supported = list(supported_types) if supported_types is not None else None
        self._clock = clock
        self._chunks: List[bytes] = []
        self._started_at: Optional[float] = None
        self.mime_type: Optional[str] = None

    @property
    def is_recording(self) -> bool:
        return self._started_at is not None

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return self._clock() - self._started_at

    def start(self) -> str:
        if self._supported is not None and not self._supported:
            raise RecordingError(RecordingErrorKind.UNSUPPORTED)
        if self.is_recording:
            raise RecordingError(RecordingErrorKind.FAILED, "already recording")

        if self._supported is None:
            self.mime_type = PREFERRED_MIME_TYPES[0]
        else:
            self.mime_type = choose_mime_type(self._supported)
        self._chunks = []
        self._started_at = self._clock()
        logger.debug("Recording started as %s", self.mime_type)
        return self.mime_type

    def add_chunk(self, chunk: bytes) -> None:
        if not self.is_recording:
            raise RecordingError(RecordingErrorKind.FAILED, "not recording")
        if chunk:
            self._chunks.append(chunk)

    def stop(self) -> AudioClip:
        if not self.is_recording:
            raise RecordingError(RecordingErrorKind.FAILED, "not recording")

        duration = self.elapsed
        clip = AudioClip(data=b"".join(self._chunks), mime_type=self.mime_type, duration=duration)
        self._chunks = []
        self._started_at = None
        logger.debug("Recording stopped after %s (%d bytes)", format_duration(duration), len(clip.data))
        return clip

    def cancel(self) -> None:
        self._chunks = []
        self._started_at = None
