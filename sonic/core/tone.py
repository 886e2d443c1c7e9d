"""Tone normalization — final conversational rewrite of a draft reply.

Never blocks the reply: any failure returns the draft unchanged. A rewrite
that drops a link from the draft is discarded as well.
"""

import logging
import re
from typing import Optional

import httpx

from ..llm.provider import ChatMessage, LLMError, LLMProvider

logger = logging.getLogger("sonic.tone")

_URL_RE = re.compile(r"https?://[^\s)\]>]+")

TONE_PROMPT = """\
Review the following text, which is an AI assistant's draft response for Telegram. Refine it into clean, natural language suitable for a helpful secretary communicating via chat.

**Refinement Guidelines:**
- **Tone:** friendly, efficient and conversational.
- **Markdown:** remove unnecessary formatting (bold `**...**`, italics `_..._`, inline code) that isn't essential for meaning.
- **Keep Essential Markdown:** keep links clickable, e.g. `[Link Text](URL)`.
- **Facts:** keep every id, email, name, date, count and status exactly as written. Do NOT add new facts.
- **Conciseness:** keep it short and clear.

**Draft Text:**
---
{draft}
---

**Refined Text (Natural Language for Telegram):**"""


def extract_urls(text: str) -> set[str]:
    return {u.rstrip(".,;:!?") for u in _URL_RE.findall(text or "")}


class ToneNormalizer:
    """Rewrites drafts with one model call, falling back to the draft."""

    def __init__(self, provider: LLMProvider, model: Optional[str] = None):
        self.provider = provider
        self.model = model

    async def normalize(self, draft: str) -> str:
        if not draft or not draft.strip():
            return draft

        try:
            response = await self.provider.chat(
                [ChatMessage(role="user", content=TONE_PROMPT.format(draft=draft))],
                model=self.model,
                temperature=0.3,
            )
        except (LLMError, httpx.HTTPError) as e:
            logger.warning(f"Tone call failed ({type(e).__name__}); returning draft unchanged")
            return draft

        refined = (response.content or "").strip()
        if not refined:
            logger.warning("Tone call returned no text; returning draft unchanged")
            return draft

        missing = extract_urls(draft) - extract_urls(refined)
        if missing:
            logger.warning(f"Tone rewrite dropped {len(missing)} link(s); returning draft unchanged")
            return draft

        return refined
