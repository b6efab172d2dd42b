"""Shared Gemini call with timeout and error mapping"""
import asyncio
import functools
import logging
from typing import Any, List, Optional, Type

import httpx
from google import genai
from google.genai import errors, types

from . import config
from .errors import (
    AIServiceError,
    AINotConfiguredError,
    ErrorCategory,
    categorize_status,
    friendly_message,
)


logger = logging.getLogger(__name__)

# Failures of the transport rather than of the request itself
NETWORK_ERRORS = (httpx.HTTPError, OSError)


@functools.lru_cache(maxsize=4)
def _client_for(api_key: str) -> genai.Client:
    logger.debug("Creating Gemini client")
    return genai.Client(api_key=api_key)


def get_client() -> genai.Client:
    """Client for the configured key, reused across calls"""
    api_key = config.ai_api_key()
    if not api_key:
        raise AINotConfiguredError()
    return _client_for(api_key)


def reset_clients() -> None:
    _client_for.cache_clear()


async def generate_text(
    model: str,
    contents: List[Any],
    error_cls: Type[AIServiceError],
    fallback: str,
    generation_config: Optional[types.GenerateContentConfig] = None,
    timeout: Optional[float] = None,
) -> str:
    """Run one generate_content call and return the response text.

    Remote failures are raised as ``error_cls`` with a display message and
    a category; nothing is retried.
    """
    client = get_client()
    timeout = timeout if timeout is not None else config.AI_TIMEOUT_SECONDS

    try:
        response = await asyncio.wait_for(
            client.aio.models.generate_content(
                model=model,
                contents=contents,
                config=generation_config,
            ),
            timeout=timeout,
        )
    except errors.APIError as e:
        logger.error("%s: HTTP %s %s", fallback, e.code, e.message)
        raise error_cls(
            friendly_message(e.code, e.message, fallback),
            status_code=e.code,
            category=categorize_status(e.code),
        ) from e
    except asyncio.TimeoutError as e:
        logger.error("%s: timed out after %ss", fallback, timeout)
        raise error_cls(
            f"{fallback}: the AI service timed out after {timeout:g} seconds",
            category=ErrorCategory.TIMEOUT,
        ) from e
    except NETWORK_ERRORS as e:
        logger.error("%s: transport error: %s", fallback, e)
        raise error_cls(
            f"Could not connect to the AI service: {e}",
            category=ErrorCategory.NETWORK,
        ) from e
    except Exception as e:
        logger.exception("%s: unexpected error", fallback)
        raise error_cls(
            f"{fallback}: unexpected error from the AI client: {e}",
            category=ErrorCategory.UNEXPECTED,
        ) from e

    return response.text or ""
