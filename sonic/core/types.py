"""Request-scoped data types for one user turn.

IntentDecision is a closed union of three variants: DirectAnswer,
ToolCall and Clarification. Exactly one is produced per turn.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class UnknownToolError(ValueError):
    """Tool name outside the fixed action set."""

    def __init__(self, name: str):
        super().__init__(f"Unknown action requested: {name!r}")
        self.name = name


class ToolName(str, Enum):
    GET_GUESTS = "getGuests"
    GET_EVENT = "getEvent"
    UPDATE_GUEST_STATUS = "updateGuestStatus"

    @classmethod
    def parse(cls, name: Any) -> "ToolName":
        """Accept getGuests / GetGuests / get_guests spellings."""
        if isinstance(name, cls):
            return name
        if not isinstance(name, str):
            raise UnknownToolError(str(name))
        key = name.replace("_", "").replace("-", "").strip().lower()
        for member in cls:
            if member.value.lower() == key:
                return member
        raise UnknownToolError(name)


@dataclass(frozen=True)
class EventRef:
    """Snapshot of one known event, fetched fresh every turn."""

    id: str
    name: str
    start_at: Optional[str] = None
    location: Optional[str] = None

    def context_line(self) -> str:
        line = f"{self.name} (id: {self.id}, starts: {self.start_at or 'N/A'}"
        if self.location:
            line += f", location: {self.location}"
        return line + ")"


@dataclass(frozen=True)
class DirectAnswer:
    text: str
    fixed: bool = False     # canned reply; skips tone normalization


@dataclass(frozen=True)
class ToolCall:
    tool: ToolName
    params: dict = field(default_factory=dict)

    @classmethod
    def build(cls, tool: Any, params: Optional[dict] = None) -> "ToolCall":
        """Normalize the tool name and stringify param values (None dropped)."""
        clean = {
            str(k): str(v).strip()
            for k, v in (params or {}).items()
            if v is not None and str(v).strip() != ""
        }
        return cls(tool=ToolName.parse(tool), params=clean)


@dataclass(frozen=True)
class Clarification:
    prompt: str
    candidates: tuple = ()


IntentDecision = Union[DirectAnswer, ToolCall, Clarification]


@dataclass(frozen=True)
class AmbiguityMatch:
    """More than one known event matches a name; always surfaced, never picked."""

    query: str
    candidates: tuple

    def to_prompt(self) -> str:
        lines = [f'I found {len(self.candidates)} events matching "{self.query}". Which one do you mean?']
        for i, event in enumerate(self.candidates, 1):
            lines.append(f"{i}. {event.name} (id: {event.id})")
        lines.append("Reply with the event id to continue.")
        return "\n".join(lines)


@dataclass
class ActionResult:
    """Outcome of one dispatched tool call: raw data or a domain error."""

    tool: ToolName
    event_id: Optional[str] = None
    data: Any = None
    error: Optional[str] = None
    error_kind: Optional[str] = None   # "validation" | "auth" | "not_found" | "upstream" | "unknown_tool"
    params: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def has_more(self) -> bool:
        return isinstance(self.data, dict) and bool(self.data.get("has_more"))
