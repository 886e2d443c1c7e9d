"""Intent resolution — one model call per turn, one decision out.

The model is asked for either a single TOOL_CALL JSON object or a plain
natural-language answer. Parsing is two-step: strict structural validation
against the ToolCall shape first, and anything that fails it (syntax or
structure) is treated as a direct answer. A malformed tool call is never
partially honored.

A structurally valid tool call is then grounded: its event reference is
checked against the turn's event list, which may turn it into a
Clarification (ambiguous or missing event) or a DirectAnswer (unknown id
or name).
"""

import json
import logging
import re
from typing import Optional

import httpx

from ..llm.provider import (
    ChatMessage,
    LLMAbnormalStopError,
    LLMEmptyResponseError,
    LLMError,
    LLMProvider,
    LLMSafetyBlockError,
)
from .capabilities import Capabilities
from .context import EventContext
from .references import (
    EventReferenceError,
    MissingReferenceError,
    resolve_reference,
    same_name_siblings,
)
from .types import (
    AmbiguityMatch,
    Clarification,
    DirectAnswer,
    IntentDecision,
    ToolCall,
    UnknownToolError,
)

logger = logging.getLogger("sonic.intent")

# ── Fixed replies for model failures ─────────────────────────

SAFETY_APOLOGY = "Sorry, I can't help with that. The request was blocked by the AI safety filter."
EMPTY_APOLOGY = "Sorry, the AI service returned an empty response. Please try again."
ABNORMAL_STOP_APOLOGY = "Sorry, the AI service stopped before finishing its answer ({reason}). Please try again."
UNAVAILABLE_APOLOGY = "Sorry, the AI service is unavailable right now. Please try again in a moment."
UNKNOWN_ACTION_REPLY = "Sorry, I was asked to perform an unknown action ({name}), so I didn't do anything."
GROUNDING_APOLOGY = (
    "Sorry, I couldn't load your Luma events right now, so I can't act on a specific event. "
    "Please try again in a moment."
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.I)

INTENT_PROMPT = """\
You are an AI assistant acting as a helpful secretary managing Luma events.
Analyze the User Request considering the Context, your Capabilities, and available Tools.

**Context:**
{context}

**Your Capabilities & Limitations:**
{capabilities}

**Available Tools:**
{tools}

**User Request:** "{text}"

**Your Task:** Decide the *best* course of action.
1. **If fulfilling the request REQUIRES using one of the tools** (because the info isn't in the context or an action is needed) AND you can extract all necessary parameters (event reference, guest_email etc.):
   Respond with ONLY the JSON object specifying the tool call. Examples:
   {{"action": "TOOL_CALL", "tool": "getGuests", "params": {{"event_id": "evt-...", "status_filter": "pending_approval"}}}}
   {{"action": "TOOL_CALL", "tool": "updateGuestStatus", "params": {{"event_id": "evt-...", "guest_email": "user@example.com", "new_status": "approved"}}}}
   {{"action": "TOOL_CALL", "tool": "getEvent", "params": {{"event_name": "summit"}}}}
   - Resolve event names to ids from the context only when exactly one event fits.
2. **Otherwise** (the request can be answered from context, hits a limitation, needs clarification such as a missing email, or is unclear):
   Respond DIRECTLY with the final natural-language answer in a helpful, conversational secretary tone suitable for Telegram. Use minimal Markdown (only for essential things like links). DO NOT output JSON in this case.

**Response:** (Either JSON for TOOL_CALL or natural-language text)"""


def build_intent_prompt(text: str, context: EventContext, capabilities: Capabilities) -> str:
    return INTENT_PROMPT.format(
        context=context.render(),
        capabilities=capabilities.render(),
        tools=capabilities.tools,
        text=text.replace('"', "'"),
    )


def parse_model_output(raw: str) -> IntentDecision:
    """Classify raw model text as a ToolCall or a DirectAnswer.

    Unknown tool names are reported as a fixed DirectAnswer, never echoed
    as raw JSON.
    """
    cleaned = _FENCE_RE.sub("", raw.strip()).strip()
    if not (cleaned.startswith("{") and cleaned.endswith("}")):
        return DirectAnswer(raw.strip())

    try:
        decision = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.warning(f"Response looked like JSON but failed to parse ({e}); treating as direct answer")
        return DirectAnswer(raw.strip())

    if not (
        isinstance(decision, dict)
        and decision.get("action") == "TOOL_CALL"
        and isinstance(decision.get("tool"), str)
        and isinstance(decision.get("params"), dict)
    ):
        logger.warning(f"Parsed JSON is not a valid TOOL_CALL: {decision!r}")
        return DirectAnswer(raw.strip())

    try:
        return ToolCall.build(decision["tool"], decision["params"])
    except UnknownToolError as e:
        logger.warning(f"Model requested unknown tool {e.name!r}")
        return DirectAnswer(UNKNOWN_ACTION_REPLY.format(name=e.name), fixed=True)


def apology_for(error: Exception) -> str:
    """Fixed reply naming the model failure class."""
    if isinstance(error, LLMSafetyBlockError):
        return SAFETY_APOLOGY
    if isinstance(error, LLMEmptyResponseError):
        return EMPTY_APOLOGY
    if isinstance(error, LLMAbnormalStopError):
        return ABNORMAL_STOP_APOLOGY.format(reason=error.finish_reason)
    return UNAVAILABLE_APOLOGY


def ground_tool_call(
    call: ToolCall,
    context: EventContext,
    user_text: Optional[str] = None,
) -> IntentDecision:
    """Check the call's event reference against the context list.

    When ``user_text`` is given and the id came from the model rather than
    the user, an event whose name is shared by other known events is
    treated as ambiguous.
    """
    if not context.available:
        return DirectAnswer(GROUNDING_APOLOGY, fixed=True)

    event_id = call.params.get("event_id")
    event_name = call.params.get("event_name")

    try:
        resolved = resolve_reference(context.events, event_id=event_id, event_name=event_name)
    except MissingReferenceError as e:
        return Clarification(str(e))
    except EventReferenceError as e:
        return DirectAnswer(str(e), fixed=True)

    if isinstance(resolved, AmbiguityMatch):
        return Clarification(resolved.to_prompt(), resolved.candidates)

    if event_id and user_text is not None and resolved.id not in user_text:
        siblings = same_name_siblings(context.events, resolved)
        if len(siblings) > 1:
            logger.info(f"Model picked {resolved.id} but {len(siblings)} events share its name")
            match = AmbiguityMatch(query=resolved.name, candidates=tuple(siblings))
            return Clarification(match.to_prompt(), match.candidates)

    params = {k: v for k, v in call.params.items() if k != "event_name"}
    params["event_id"] = resolved.id
    return ToolCall(tool=call.tool, params=params)


class IntentResolver:
    """Resolve user text to exactly one IntentDecision."""

    def __init__(self, provider: LLMProvider, capabilities: Capabilities, model: Optional[str] = None):
        self.provider = provider
        self.capabilities = capabilities
        self.model = model

    async def resolve(self, text: str, context: EventContext) -> IntentDecision:
        prompt = build_intent_prompt(text, context, self.capabilities)

        try:
            response = await self.provider.chat(
                [ChatMessage(role="user", content=prompt)],
                model=self.model,
                temperature=0.2,
            )
        except (LLMError, httpx.HTTPError) as e:
            logger.error(f"Intent model call failed: {type(e).__name__}: {e}")
            return DirectAnswer(apology_for(e), fixed=True)

        raw = (response.content or "").strip()
        if not raw:
            return DirectAnswer(EMPTY_APOLOGY, fixed=True)
        logger.info(f"Raw intent response: {raw[:500]}")

        decision = parse_model_output(raw)
        if isinstance(decision, ToolCall):
            decision = ground_tool_call(decision, context, user_text=text)
        logger.info(f"Intent decision: {type(decision).__name__}")
        return decision
