"""Google Gemini provider via the Gemini API (API key).

Single-shot generateContent calls. Safety settings are sent with every
request and the response is classified into typed errors:

  - promptFeedback.blockReason      → LLMSafetyBlockError
  - candidate finishReason SAFETY…  → LLMSafetyBlockError
  - other non-normal finishReason   → LLMAbnormalStopError
  - no candidates / no text         → LLMEmptyResponseError
  - 429 / 401,403 / 400             → rate limit / auth / bad request
  - 5xx and overload messages       → retried with backoff, then raised
"""

import asyncio
import logging
import re
from typing import Optional

import httpx

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

logger = logging.getLogger("sonic.llm.google")

_GEMINI_API = "https://generativelanguage.googleapis.com/v1beta"

_MAX_RETRIES = 3
_BASE_DELAY_MS = 1_000
_MAX_RETRY_DELAY_MS = 30_000
_REQUEST_TIMEOUT = 60

SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
]

# Finish reasons that mean "content withheld by policy"
_SAFETY_FINISH_REASONS = {"SAFETY", "RECITATION", "BLOCKLIST", "PROHIBITED_CONTENT", "SPII", "IMAGE_SAFETY"}
# Finish reasons that mean "generation ended normally"
_NORMAL_FINISH_REASONS = {"STOP", "MAX_TOKENS", "FINISH_REASON_UNSPECIFIED", ""}


# ═══════════════════════════════════════════════════════════════════════════════
# Retry helpers
# ═══════════════════════════════════════════════════════════════════════════════

_RETRYABLE_PATTERN = re.compile(
    r'resource.?exhausted|overloaded|service.?unavailable|other.?side.?closed',
    re.I,
)


def _is_retryable_error(status: int, error_text: str) -> bool:
    """Check if an error is retryable.

    400/401/403 are never retryable. 429 is handled separately so a quota
    error surfaces as LLMRateLimitError after the last attempt.
    """
    if status in (429, 500, 502, 503, 504):
        return True
    if status in (400, 401, 403, 404):
        return False
    return bool(_RETRYABLE_PATTERN.search(error_text))


def _extract_retry_delay(error_text: str, headers: Optional[httpx.Headers] = None) -> Optional[int]:
    """Extract retry delay in milliseconds from an error response, if given."""
    if headers:
        retry_after = headers.get("retry-after")
        if retry_after:
            try:
                seconds = float(retry_after)
                if seconds > 0:
                    return int(seconds * 1000) + 1000
            except ValueError:
                pass

    # "retryDelay": "34.07s"
    m = re.search(r'"retryDelay":\s*"([0-9.]+)(ms|s)"', error_text, re.I)
    if m:
        value = float(m.group(1))
        ms = value if m.group(2).lower() == "ms" else value * 1000
        if ms > 0:
            return int(ms) + 1000

    return None


def _classify_http_error(status: int, error_text: str) -> LLMError:
    if status == 429:
        return LLMRateLimitError(f"Gemini rate limited: {error_text[:200]}")
    if status in (401, 403):
        return LLMAuthError(f"Gemini authentication failed ({status})")
    if status == 400:
        return LLMBadRequestError(f"Gemini rejected the request: {error_text[:200]}")
    return LLMError(f"Gemini HTTP {status}: {error_text[:200]}")


def parse_generate_response(data: dict, model: str) -> ChatResponse:
    """Turn a generateContent JSON body into a ChatResponse or a typed error."""
    feedback = data.get("promptFeedback") or {}
    block_reason = feedback.get("blockReason")
    if block_reason:
        raise LLMSafetyBlockError(block_reason)

    candidates = data.get("candidates") or []
    if not candidates:
        raise LLMEmptyResponseError("Gemini returned no candidates")

    candidate = candidates[0]
    finish_reason = candidate.get("finishReason") or ""
    if finish_reason in _SAFETY_FINISH_REASONS:
        raise LLMSafetyBlockError(finish_reason)
    if finish_reason not in _NORMAL_FINISH_REASONS:
        raise LLMAbnormalStopError(finish_reason)

    parts = (candidate.get("content") or {}).get("parts") or []
    text = "".join(
        part["text"] for part in parts
        if "text" in part and not part.get("thought")
    ).strip()
    if not text:
        raise LLMEmptyResponseError("Gemini returned an empty response")

    usage = data.get("usageMetadata", {})
    return ChatResponse(
        content=text,
        model=model,
        input_tokens=usage.get("promptTokenCount", 0),
        output_tokens=usage.get("candidatesTokenCount", 0),
        finish_reason=finish_reason or None,
    )


class GoogleProvider(LLMProvider):
    """Google Gemini via the standard Gemini API (API key)."""

    def __init__(
        self,
        api_key: str,
        chat_model: str = "gemini-2.0-flash",
        base_url: str = _GEMINI_API,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("api_key is required")
        self.api_key = api_key
        self.chat_model = chat_model
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    @property
    def name(self) -> str:
        return "google"

    @staticmethod
    def _format_messages(messages: list[ChatMessage]) -> tuple[Optional[str], list[dict]]:
        """Convert ChatMessages to Gemini format. Returns (system_text, contents)."""
        system_text = None
        contents = []
        for msg in messages:
            if not msg.content or not msg.content.strip():
                continue
            if msg.role == "system":
                system_text = msg.content if system_text is None else system_text + "\n\n" + msg.content
            elif msg.role == "assistant":
                contents.append({"role": "model", "parts": [{"text": msg.content}]})
            else:
                contents.append({"role": "user", "parts": [{"text": msg.content}]})
        return system_text, contents

    async def chat(
        self,
        messages: list[ChatMessage],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatResponse:
        model = model or self.chat_model
        system_text, contents = self._format_messages(messages)

        body: dict = {
            "contents": contents,
            "safetySettings": SAFETY_SETTINGS,
        }
        if system_text:
            body["systemInstruction"] = {"parts": [{"text": system_text}]}

        gen_config: dict = {}
        if temperature is not None:
            gen_config["temperature"] = temperature
        if max_tokens:
            gen_config["maxOutputTokens"] = max_tokens
        if gen_config:
            body["generationConfig"] = gen_config

        url = f"{self.base_url}/models/{model}:generateContent"

        async with httpx.AsyncClient(timeout=_REQUEST_TIMEOUT, transport=self._transport) as client:
            for attempt in range(_MAX_RETRIES + 1):
                try:
                    resp = await client.post(url, json=body, params={"key": self.api_key})
                except (httpx.ConnectError, httpx.ReadTimeout) as e:
                    if attempt < _MAX_RETRIES:
                        delay = min(_BASE_DELAY_MS * 2 ** attempt, _MAX_RETRY_DELAY_MS)
                        logger.warning(f"Gemini transport error ({type(e).__name__}), retry in {delay}ms")
                        await asyncio.sleep(delay / 1000)
                        continue
                    raise

                if resp.status_code == 200:
                    try:
                        data = resp.json()
                    except ValueError:
                        logger.error(f"Gemini returned a non-JSON body: {resp.text[:200]}")
                        raise LLMEmptyResponseError("Gemini returned a non-JSON response")
                    if not isinstance(data, dict):
                        raise LLMEmptyResponseError("Gemini returned an unexpected response shape")
                    return parse_generate_response(data, model)

                error_text = resp.text
                if attempt < _MAX_RETRIES and _is_retryable_error(resp.status_code, error_text):
                    delay = _extract_retry_delay(error_text, resp.headers) or _BASE_DELAY_MS * 2 ** attempt
                    delay = min(delay, _MAX_RETRY_DELAY_MS)
                    logger.warning(
                        f"Gemini HTTP {resp.status_code} (attempt {attempt + 1}/{_MAX_RETRIES + 1}), "
                        f"retry in {delay}ms"
                    )
                    await asyncio.sleep(delay / 1000)
                    continue

                logger.error(f"Gemini HTTP {resp.status_code}: {error_text[:300]}")
                raise _classify_http_error(resp.status_code, error_text)

        # Unreachable: the loop either returns or raises
        raise LLMError("Gemini request failed")
