"""Tests for the Gemini provider (response classification, HTTP errors)."""

import httpx
import pytest

from sonic.llm.google import (
    SAFETY_SETTINGS,
    GoogleProvider,
    _extract_retry_delay,
    _is_retryable_error,
    parse_generate_response,
)
from sonic.llm.provider import (
    ChatMessage,
    LLMAbnormalStopError,
    LLMAuthError,
    LLMBadRequestError,
    LLMEmptyResponseError,
    LLMSafetyBlockError,
)


def _body(text="hello", finish="STOP"):
    return {
        "candidates": [{"content": {"parts": [{"text": text}]}, "finishReason": finish}],
        "usageMetadata": {"promptTokenCount": 10, "candidatesTokenCount": 3},
    }


class TestParseGenerateResponse:
    def test_ok(self):
        resp = parse_generate_response(_body("hi there"), "gemini-test")
        assert resp.content == "hi there"
        assert (resp.input_tokens, resp.output_tokens) == (10, 3)

    def test_prompt_blocked(self):
        with pytest.raises(LLMSafetyBlockError) as exc:
            parse_generate_response({"promptFeedback": {"blockReason": "SAFETY"}}, "m")
        assert exc.value.reason == "SAFETY"

    def test_candidate_blocked(self):
        with pytest.raises(LLMSafetyBlockError):
            parse_generate_response(_body("", finish="SAFETY"), "m")

    def test_abnormal_stop(self):
        with pytest.raises(LLMAbnormalStopError) as exc:
            parse_generate_response(_body("partial", finish="MALFORMED_FUNCTION_CALL"), "m")
        assert exc.value.finish_reason == "MALFORMED_FUNCTION_CALL"

    def test_max_tokens_is_normal(self):
        assert parse_generate_response(_body("long", finish="MAX_TOKENS"), "m").content == "long"

    def test_no_candidates(self):
        with pytest.raises(LLMEmptyResponseError):
            parse_generate_response({"candidates": []}, "m")

    def test_empty_text(self):
        with pytest.raises(LLMEmptyResponseError):
            parse_generate_response(_body("   "), "m")

    def test_thought_parts_skipped(self):
        body = {"candidates": [{"content": {"parts": [
            {"text": "thinking...", "thought": True}, {"text": "answer"},
        ]}, "finishReason": "STOP"}]}
        assert parse_generate_response(body, "m").content == "answer"


class TestRetryHelpers:
    def test_retryable(self):
        assert _is_retryable_error(503, "")
        assert _is_retryable_error(429, "")
        assert not _is_retryable_error(400, "overloaded")
        assert _is_retryable_error(520, "Service Unavailable")

    def test_retry_delay_from_body(self):
        assert _extract_retry_delay('{"retryDelay": "2s"}') == 3000

    def test_retry_delay_from_header(self):
        assert _extract_retry_delay("", httpx.Headers({"retry-after": "1"})) == 2000


class TestGoogleProviderChat:
    def test_requires_key(self):
        with pytest.raises(ValueError):
            GoogleProvider(api_key="")

    @pytest.mark.asyncio
    async def test_request_shape(self):
        seen = {}

        def handler(request: httpx.Request):
            import json
            seen["path"] = request.url.path
            seen["key"] = request.url.params.get("key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_body("ok"))

        provider = GoogleProvider("g-key", chat_model="gemini-test", transport=httpx.MockTransport(handler))
        resp = await provider.chat(
            [ChatMessage(role="system", content="be nice"), ChatMessage(role="user", content="hi")],
            temperature=0.2,
        )
        assert resp.content == "ok"
        assert seen["path"].endswith("/models/gemini-test:generateContent")
        assert seen["key"] == "g-key"
        assert seen["body"]["safetySettings"] == SAFETY_SETTINGS
        assert seen["body"]["systemInstruction"] == {"parts": [{"text": "be nice"}]}
        assert seen["body"]["contents"] == [{"role": "user", "parts": [{"text": "hi"}]}]
        assert seen["body"]["generationConfig"] == {"temperature": 0.2}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, error_cls", [(400, LLMBadRequestError), (401, LLMAuthError)])
    async def test_http_errors_not_retried(self, status, error_cls):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(status, text="bad")

        provider = GoogleProvider("g-key", transport=httpx.MockTransport(handler))
        with pytest.raises(error_cls):
            await provider.chat([ChatMessage(role="user", content="hi")])
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_safety_block_surfaces(self):
        def handler(request):
            return httpx.Response(200, json={"promptFeedback": {"blockReason": "PROHIBITED_CONTENT"}})

        provider = GoogleProvider("g-key", transport=httpx.MockTransport(handler))
        with pytest.raises(LLMSafetyBlockError):
            await provider.chat([ChatMessage(role="user", content="hi")])

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response", [
        httpx.Response(200, text="<html>upstream proxy</html>"),
        httpx.Response(200, json=["not", "a", "dict"]),
    ])
    async def test_malformed_200_body_is_typed(self, response):
        provider = GoogleProvider("g-key", transport=httpx.MockTransport(lambda request: response))
        with pytest.raises(LLMEmptyResponseError):
            await provider.chat([ChatMessage(role="user", content="hi")])


class TestMalformedBodyDownstream:
    @pytest.mark.asyncio
    async def test_tone_keeps_draft(self):
        from sonic.core.tone import ToneNormalizer

        def handler(request):
            return httpx.Response(200, text="<html>upstream proxy</html>")

        tone = ToneNormalizer(GoogleProvider("g-key", transport=httpx.MockTransport(handler)))
        assert await tone.normalize("Approved ana@x.com for evt-1.") == "Approved ana@x.com for evt-1."
