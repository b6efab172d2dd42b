"""Troubleshooting tips shown next to a failed attempt.

Cosmetic only: nothing in the session reads these back.
"""
from typing import Optional

from .errors import ErrorCategory


CATEGORY_TIPS = {
    ErrorCategory.CONFIGURATION: "Check that GEMINI_API_KEY is correctly set in your environment variables.",
    ErrorCategory.AUTH: "Check that GEMINI_API_KEY is correctly set in your environment variables.",
    ErrorCategory.RATE_LIMIT: "You've made too many requests. Wait a minute before trying again.",
    ErrorCategory.NETWORK: "Check your internet connection and ensure the server is running.",
    ErrorCategory.UNAVAILABLE: "The AI service is temporarily down. Please try again in a few minutes.",
    ErrorCategory.NO_SPEECH: "Make sure to speak clearly into the microphone and check your microphone settings.",
    ErrorCategory.TIMEOUT: "The AI service took too long to answer. Try a shorter recording or try again later.",
}

# First match wins
MESSAGE_TIPS = [
    (("api key", "401", "unauthorized"), CATEGORY_TIPS[ErrorCategory.AUTH]),
    (("rate limit", "429"), CATEGORY_TIPS[ErrorCategory.RATE_LIMIT]),
    (("network", "connect", "fetch"), CATEGORY_TIPS[ErrorCategory.NETWORK]),
    (("unavailable", "503"), CATEGORY_TIPS[ErrorCategory.UNAVAILABLE]),
    (("no speech",), CATEGORY_TIPS[ErrorCategory.NO_SPEECH]),
    (("timed out",), CATEGORY_TIPS[ErrorCategory.TIMEOUT]),
]


def troubleshooting_tip(message: Optional[str], category: Optional[ErrorCategory] = None) -> Optional[str]:
    if category is not None and category in CATEGORY_TIPS:
        return CATEGORY_TIPS[category]
    if not message:
        return None

    lowered = message.lower()
    for patterns, tip in MESSAGE_TIPS:
        if any(p in lowered for p in patterns):
            return tip
    return None
