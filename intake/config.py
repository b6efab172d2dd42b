"""Runtime configuration read from environment variables"""
import os
import logging
from pathlib import Path
from typing import Optional, List


# Model names for the hosted Gemini endpoints
TRANSCRIPTION_MODEL = os.getenv("INTAKE_TRANSCRIPTION_MODEL", "gemini-2.5-flash")
EXTRACTION_MODEL = os.getenv("INTAKE_EXTRACTION_MODEL", "gemini-2.5-flash")

# Seconds before a remote call is abandoned
AI_TIMEOUT_SECONDS = float(os.getenv("INTAKE_AI_TIMEOUT", "60"))

MAX_IMAGES = int(os.getenv("INTAKE_MAX_IMAGES", "3"))
MAX_IMAGE_BYTES = 10 * 1024 * 1024
PREVIEW_SIZE = (256, 256)

DB_PATH = Path(os.getenv("INTAKE_DB_PATH", "inventory.duckdb"))
PREVIEW_DIR = os.getenv("INTAKE_PREVIEW_DIR")

# Sessions untouched for this many seconds are closed and their previews released
SESSION_IDLE_SECONDS = float(os.getenv("INTAKE_SESSION_IDLE_TIMEOUT", "1800"))

CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://localhost:5174",
]


def ai_api_key() -> Optional[str]:
    """The single credential that gates both AI endpoints"""
    key = os.getenv("GEMINI_API_KEY")
    return key or None


def is_ai_configured() -> bool:
    return ai_api_key() is not None


def cors_origins() -> List[str]:
    extra = os.getenv("INTAKE_CORS_ORIGINS")
    if not extra:
        return CORS_ORIGINS
    return CORS_ORIGINS + [o.strip() for o in extra.split(",") if o.strip()]


def configure_logging() -> None:
    level = os.getenv("INTAKE_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
