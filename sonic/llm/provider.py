"""Provider-agnostic LLM interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


# ════════════════════════════════════════════════════════
# LLM Exception Hierarchy: classify errors by type,
# not by string matching.  The pipeline catches these.
# ════════════════════════════════════════════════════════

class LLMError(Exception):
    """Base class for all LLM provider errors."""
    pass

class LLMRateLimitError(LLMError):
    """429 — rate limited after all retries exhausted."""
    pass

class LLMAuthError(LLMError):
    """401/403 — authentication or authorization failure."""
    pass

class LLMBadRequestError(LLMError):
    """400 — bad request (malformed prompt, oversized input, etc.)."""
    pass

class LLMEmptyResponseError(LLMError):
    """LLM returned no usable text."""
    pass

class LLMSafetyBlockError(LLMError):
    """Prompt or candidate blocked by the provider's safety policy."""

    def __init__(self, reason: str = "SAFETY"):
        super().__init__(f"Blocked by safety policy ({reason})")
        self.reason = reason

class LLMAbnormalStopError(LLMError):
    """Generation stopped for a reason other than a normal finish."""

    def __init__(self, finish_reason: str):
        super().__init__(f"Generation stopped abnormally ({finish_reason})")
        self.finish_reason = finish_reason


@dataclass
class ChatMessage:
    role: str           # 'system', 'user', 'assistant'
    content: str


@dataclass
class ChatResponse:
    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    finish_reason: Optional[str] = None


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def chat(
        self,
        messages: list[ChatMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatResponse:
        """Send a chat completion request.

        Raises an LLMError subclass when no usable text comes back.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name."""
        ...
