"""Speech-to-text for voice descriptions"""
import logging
from typing import Optional

from google.genai import types

from . import config
from .ai_client import generate_text
from .errors import ErrorCategory, TranscriptionError
from .recording import base_mime_type


logger = logging.getLogger(__name__)

TRANSCRIPTION_PROMPT = (
    "Transcribe this audio recording verbatim in English. "
    "Return only the spoken words with no commentary, labels or timestamps. "
    "If nothing is said, return an empty response."
)

# Containers Gemini knows under a different name
MIME_ALIASES = {
    "audio/m4a": "audio/mp4",
    "audio/x-m4a": "audio/mp4",
}


def upload_mime_type(mime_type: str) -> str:
    base = base_mime_type(mime_type)
    return MIME_ALIASES.get(base, base)


async def transcribe(audio_bytes: bytes, mime_type: str, timeout: Optional[float] = None) -> str:
    """Return the transcript of ``audio_bytes``.

    The text may be empty when no speech was recognised; deciding what to do
    about that is up to the caller.
    """
    if not audio_bytes:
        raise TranscriptionError("Audio recording is empty", category=ErrorCategory.INPUT)

    audio = types.Part.from_bytes(data=audio_bytes, mime_type=upload_mime_type(mime_type))
    text = await generate_text(
        model=config.TRANSCRIPTION_MODEL,
        contents=[TRANSCRIPTION_PROMPT, audio],
        error_cls=TranscriptionError,
        fallback="Transcription failed",
        generation_config=types.GenerateContentConfig(temperature=0.0),
        timeout=timeout,
    )

    text = text.strip()
    logger.info("Transcribed %d bytes of %s into %d characters", len(audio_bytes), mime_type, len(text))
    return text
