"""Turn pipeline — from raw user text to the final (unescaped) reply.

    text → event context → intent resolution → [direct answer]
                                              → [dispatch → format]
         → tone normalization → reply

Everything here is request-scoped: a TurnContext is built per message and
discarded afterwards. The only shared state is the static capability text.
Escaping for the chat platform happens later, at the send boundary.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..audit.recorder import AuditContext, AuditRecorder
from ..llm.provider import LLMProvider
from ..luma.client import LumaClient
from .capabilities import Capabilities
from .context import EventContext, fetch_event_context
from .dispatcher import ActionDispatcher
from .formatter import ResponseFormatter, render_result
from .intent import IntentResolver, ground_tool_call
from .tone import ToneNormalizer
from .types import Clarification, DirectAnswer, IntentDecision, ToolCall

logger = logging.getLogger("sonic.pipeline")


@dataclass
class TurnContext:
    """Everything one turn needs; built per message, never shared."""

    org_id: str
    chat_id: int
    is_direct: bool
    text: str
    luma: LumaClient
    user_id: Optional[int] = None
    events: Optional[EventContext] = None

    @property
    def audit_context(self) -> AuditContext:
        return AuditContext.for_chat(self.org_id, self.user_id, self.chat_id, self.is_direct)


class AssistantPipeline:
    """Wires the intent resolver, dispatcher, formatter and tone stages."""

    def __init__(
        self,
        provider: LLMProvider,
        capabilities: Optional[Capabilities] = None,
        audit: Optional[AuditRecorder] = None,
        model: Optional[str] = None,
        context_max_pages: int = 5,
        context_include_details: bool = False,
    ):
        self.capabilities = capabilities or Capabilities()
        self.audit = audit or AuditRecorder()
        self.intent = IntentResolver(provider, self.capabilities, model=model)
        self.formatter = ResponseFormatter(provider, model=model)
        self.tone = ToneNormalizer(provider, model=model)
        self.context_max_pages = context_max_pages
        self.context_include_details = context_include_details

    async def load_context(self, ctx: TurnContext) -> EventContext:
        if ctx.events is None:
            ctx.events = await fetch_event_context(
                ctx.luma,
                max_pages=self.context_max_pages,
                include_details=self.context_include_details,
            )
        return ctx.events

    async def handle_turn(self, ctx: TurnContext) -> str:
        """Handle one free-form message. Returns the reply text."""
        events = await self.load_context(ctx)
        decision = await self.intent.resolve(ctx.text, events)
        return await self._complete(ctx, decision, request=ctx.text)

    async def run_tool(self, ctx: TurnContext, call: ToolCall) -> str:
        """Run an explicit tool call (slash commands) without the intent model.

        The event reference still goes through the resolver; results are
        rendered deterministically.
        """
        events = await self.load_context(ctx)
        decision = ground_tool_call(call, events)
        return await self._complete(ctx, decision)

    async def _complete(self, ctx: TurnContext, decision: IntentDecision, request: Optional[str] = None) -> str:
        """Turn a decision into reply text; model shaping only when ``request`` is given."""
        shape = request is not None
        if isinstance(decision, Clarification):
            return decision.prompt

        if isinstance(decision, DirectAnswer):
            if decision.fixed or not shape:
                return decision.text
            return await self.tone.normalize(decision.text)

        dispatcher = ActionDispatcher(ctx.luma, self.audit, ctx.audit_context)
        result = await dispatcher.dispatch(decision)

        if not result.ok or not shape:
            return render_result(result)

        draft = await self.formatter.format(result, request)
        return await self.tone.normalize(draft)
