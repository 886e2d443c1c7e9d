"""LLM providers."""

from .provider import (
    ChatMessage,
    ChatResponse,
    LLMAbnormalStopError,
    LLMAuthError,
    LLMBadRequestError,
    LLMEmptyResponseError,
    LLMError,
    LLMProvider,
    LLMRateLimitError,
    LLMSafetyBlockError,
)

__all__ = [
    "ChatMessage",
    "ChatResponse",
    "LLMAbnormalStopError",
    "LLMAuthError",
    "LLMBadRequestError",
    "LLMEmptyResponseError",
    "LLMError",
    "LLMProvider",
    "LLMRateLimitError",
    "LLMSafetyBlockError",
]
