"""Tests for the tone normalizer."""

import pytest

from sonic.core.tone import ToneNormalizer, extract_urls
from sonic.llm.provider import LLMRateLimitError


class TestExtractUrls:
    def test_markdown_link(self):
        assert extract_urls("See [page](https://lu.ma/evt-1).") == {"https://lu.ma/evt-1"}

    def test_trailing_punctuation(self):
        assert extract_urls("Go to https://lu.ma/x.") == {"https://lu.ma/x"}


class TestToneNormalizer:
    @pytest.mark.asyncio
    async def test_rewrite_used(self, scripted):
        provider = scripted("Here you go! Ana is approved.")
        assert await ToneNormalizer(provider).normalize("**Ana**: approved") == "Here you go! Ana is approved."

    @pytest.mark.asyncio
    async def test_failure_returns_draft(self, scripted):
        draft = "Found 1 guests for event evt-1:"
        assert await ToneNormalizer(scripted(LLMRateLimitError("429"))).normalize(draft) == draft

    @pytest.mark.asyncio
    async def test_empty_rewrite_returns_draft(self, scripted):
        assert await ToneNormalizer(scripted("")).normalize("draft") == "draft"

    @pytest.mark.asyncio
    async def test_dropped_link_returns_draft(self, scripted):
        draft = "Register here: https://lu.ma/ethdenver"
        provider = scripted("You can register on the event page.")
        assert await ToneNormalizer(provider).normalize(draft) == draft

    @pytest.mark.asyncio
    async def test_blank_draft_skips_model(self, scripted):
        assert await ToneNormalizer(scripted()).normalize("") == ""
