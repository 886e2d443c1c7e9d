"""Channel-agnostic error classification for user-facing messages."""

import asyncio

import asyncpg
import httpx

from ..core.dispatcher import ValidationError
from ..core.references import EventReferenceError
from ..llm.provider import (
    LLMAbnormalStopError,
    LLMAuthError,
    LLMBadRequestError,
    LLMEmptyResponseError,
    LLMRateLimitError,
    LLMSafetyBlockError,
)
from ..luma.errors import LumaAuthError, LumaConfigError, LumaError, LumaNotFoundError


def classify_error(e: Exception) -> str:
    """Classify any exception into a user-friendly message.

    Used by the outermost handlers only; everything the pipeline expects
    to fail is already turned into a normal reply before it gets here.
    """
    # 1-6: Typed LLM exceptions
    if isinstance(e, LLMSafetyBlockError):
        return "Sorry, I can't help with that. The request was blocked by the AI safety filter."
    if isinstance(e, LLMAbnormalStopError):
        return "The AI service stopped before finishing its answer. Please try again."
    if isinstance(e, LLMRateLimitError):
        return "Rate limited. Please wait a moment and try again."
    if isinstance(e, LLMAuthError):
        return "AI service authentication error. The bot owner may need to check the API key."
    if isinstance(e, LLMBadRequestError):
        return "The AI service rejected the request. Please rephrase and try again."
    if isinstance(e, LLMEmptyResponseError):
        return "The AI service returned an empty response. Please try again."

    # 7-10: Event platform and pipeline errors
    if isinstance(e, LumaConfigError):
        return "This chat has no usable Luma API key. Use /link <API_KEY> to connect one."
    if isinstance(e, LumaAuthError):
        return "Luma rejected the API key. Use /link <API_KEY> to connect a valid one."
    if isinstance(e, LumaNotFoundError):
        return f"Luma couldn't find that resource ({e.target or e.operation})."
    if isinstance(e, LumaError):
        return "Luma is not responding properly right now. Please try again later."
    if isinstance(e, (EventReferenceError, ValidationError)):
        return str(e)

    # 11: httpx HTTP status errors
    if isinstance(e, httpx.HTTPStatusError):
        code = e.response.status_code
        if code == 429:
            return "Rate limited. Please wait a moment and try again."
        if code in (401, 403):
            return "Authentication error. The bot owner may need to check credentials."
        if 500 <= code < 600:
            return "An upstream service is having server issues. Please try again later."
        return f"An upstream service returned HTTP {code}. Please try again later."

    # 12-13: Database errors
    if isinstance(e, asyncpg.InterfaceError):
        return "Database connection pool exhausted. Please try again in a moment."
    if isinstance(e, asyncpg.PostgresError):
        return "Database error. Please try again later."

    # 14-15: Network / timeout errors
    if isinstance(e, httpx.ConnectError):
        return "Cannot reach an upstream service. Please try again later."
    if isinstance(e, (httpx.ReadTimeout, httpx.WriteTimeout, httpx.PoolTimeout, httpx.ConnectTimeout)):
        return "Request timed out. Please try again."
    if isinstance(e, asyncio.TimeoutError):
        return "Request timed out. Please try again."

    # 16: Unexpected response shape
    if isinstance(e, (KeyError, IndexError)):
        return "Unexpected response format from an upstream service. Please try again."

    # 17: Fallback, include type name for debugging
    type_name = type(e).__name__
    return f"Sorry, something went wrong ({type_name}). Please try again later."
