"""Pytest configuration and shared fixtures."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from sonic.audit.recorder import AuditContext, AuditRecorder
from sonic.core.context import EventContext
from sonic.core.types import EventRef
from sonic.llm.provider import ChatResponse, LLMProvider


class ScriptedProvider(LLMProvider):
    """LLM stub: pops one scripted reply (text or exception) per chat() call."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts: list[str] = []

    @property
    def name(self) -> str:
        return "scripted"

    async def chat(self, messages, model=None, temperature=None, max_tokens=None):
        self.prompts.append(messages[-1].content)
        if not self.replies:
            raise AssertionError("Unexpected model call")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return ChatResponse(content=reply, model=model or "test-model")


@pytest.fixture
def scripted():
    return ScriptedProvider


@pytest.fixture
def events():
    return [
        EventRef(id="evt-1", name="ETHDenver", start_at="2030-02-23T17:00:00Z"),
        EventRef(id="evt-2", name="ETH Summit", start_at="2030-05-01T09:00:00Z"),
        EventRef(id="evt-3", name="ETH Summit", start_at="2031-05-01T09:00:00Z"),
        EventRef(id="evt-4", name="Solana Breakpoint", start_at="2020-11-01T09:00:00Z"),
    ]


@pytest.fixture
def event_context(events):
    return EventContext(events=list(events))


@pytest.fixture
def luma():
    """Luma client double; every endpoint is an AsyncMock."""
    client = MagicMock()
    client.get_self = AsyncMock(return_value={"user": {"api_id": "usr-1", "name": "Ana"}})
    client.list_events = AsyncMock(return_value={"entries": [], "has_more": False})
    client.get_event = AsyncMock(return_value={})
    client.get_guests = AsyncMock(return_value={"entries": [], "has_more": False})
    client.update_guest_status = AsyncMock(return_value={})
    return client


@pytest.fixture
def audit_storage():
    return AsyncMock()


@pytest.fixture
def audit(audit_storage):
    return AuditRecorder(storage=audit_storage)


@pytest.fixture
def direct_ctx():
    return AuditContext(org_id="org-1", user_id=42)
