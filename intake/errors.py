"""Exception hierarchy for the AI-assisted intake flow.

Every error carries a ``category`` so the presentation layer can pick help
text without re-reading the message. Messages are meant for display only.
"""
from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    CONFIGURATION = "configuration"
    INPUT = "input"
    NO_SPEECH = "no_speech"
    AUTH = "auth"
    RATE_LIMIT = "rate_limit"
    UNAVAILABLE = "unavailable"
    REMOTE = "remote"
    PARSE = "parse"
    NETWORK = "network"
    TIMEOUT = "timeout"
    UNEXPECTED = "unexpected"


NOT_CONFIGURED_MESSAGE = "AI features not configured. Please add GEMINI_API_KEY to your environment."
INVALID_KEY_MESSAGE = "Invalid Gemini API key. Please check your GEMINI_API_KEY environment variable."
RATE_LIMIT_MESSAGE = "Gemini API rate limit exceeded. Please wait a moment and try again."
UNAVAILABLE_MESSAGE = "Gemini API is temporarily unavailable. Please try again later."
NO_SPEECH_MESSAGE = "No speech detected. Please try again and speak clearly."


class AIServiceError(Exception):
    """Base class for failures of the remote AI services"""

    category = ErrorCategory.REMOTE

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        category: Optional[ErrorCategory] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        if category is not None:
            self.category = category


class AINotConfiguredError(AIServiceError):
    category = ErrorCategory.CONFIGURATION

    def __init__(self, message: str = NOT_CONFIGURED_MESSAGE):
        super().__init__(message)


class TranscriptionError(AIServiceError):
    pass


class NoSpeechError(TranscriptionError):
    category = ErrorCategory.NO_SPEECH

    def __init__(self, message: str = NO_SPEECH_MESSAGE):
        super().__init__(message)


class ExtractionError(AIServiceError):
    pass


def categorize_status(status_code: Optional[int]) -> ErrorCategory:
    if status_code in (401, 403):
        return ErrorCategory.AUTH
    if status_code == 429:
        return ErrorCategory.RATE_LIMIT
    if status_code == 503:
        return ErrorCategory.UNAVAILABLE
    if status_code == 400:
        return ErrorCategory.INPUT
    return ErrorCategory.REMOTE


def friendly_message(status_code: Optional[int], remote_message: Optional[str], fallback: str) -> str:
    """Pick the user-facing message for a failed remote call.

    Well-known status codes get fixed wording; otherwise the remote payload's
    message is used when there is one, else ``"{fallback} (HTTP N)"``.
    """
    if status_code in (401, 403):
        return INVALID_KEY_MESSAGE
    if status_code == 429:
        return RATE_LIMIT_MESSAGE
    if status_code == 503:
        return UNAVAILABLE_MESSAGE
    if remote_message:
        return remote_message
    if status_code:
        return f"{fallback} (HTTP {status_code})"
    return fallback
