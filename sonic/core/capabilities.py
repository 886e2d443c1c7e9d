"""Static capability/limitation text and tool catalogue.

Loaded once at startup and read-only afterwards. The text is embedded in
the intent prompt verbatim.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger("sonic.capabilities")

DEFAULT_CAPABILITIES = """\
- List the organization's Luma events and answer questions about them (dates, names, ids).
- Show details for a single event.
- List guests for an event, optionally filtered by approval status (approved, pending_approval, declined, waitlist, invited).
- Approve or decline a guest for an event, identified by email address."""

DEFAULT_LIMITATIONS = """\
- Cannot create, edit, cancel or delete events.
- Cannot add guests, send invitations, or email guests.
- Cannot issue refunds or change ticket types.
- Cannot manage bot access, link accounts, or change settings from a chat message (use /link).
- Cannot act on events outside the current event list."""

TOOL_CATALOGUE = """\
1. getEvent(event_id): Gets ALL details for a SINGLE specific event.
2. getGuests(event_id, [status_filter]): Lists guests for an event. Optional 'status_filter': 'approved', 'pending_approval', 'declined', 'waitlist', 'invited'.
3. updateGuestStatus(event_id, guest_email, new_status): Updates a guest's status. 'new_status' must be 'approved' or 'declined'. Requires guest_email.
If the user names an event that matches more than one known event, or you cannot pick one id with certainty, pass "event_name" (the words the user used) INSTEAD of "event_id"."""

_SECTION_RE = r"^##\s*{title}[^\n]*\n(.*?)(?=^##\s|\Z)"


def _extract_section(markdown: str, title: str) -> Optional[str]:
    m = re.search(_SECTION_RE.format(title=title), markdown, re.S | re.M | re.I)
    if m and m.group(1).strip():
        return m.group(1).strip()
    return None


@dataclass(frozen=True)
class Capabilities:
    capabilities: str = DEFAULT_CAPABILITIES
    limitations: str = DEFAULT_LIMITATIONS
    tools: str = TOOL_CATALOGUE

    def render(self) -> str:
        return (
            "Available Actions:\n"
            f"{self.capabilities}\n\n"
            "Limitations (What you CANNOT do):\n"
            f"{self.limitations}"
        )

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Capabilities":
        """Load from a markdown file with "## Current Capabilities" and
        "## Limitations" sections, falling back to the built-in text."""
        if not path:
            return cls()
        try:
            markdown = Path(path).read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"Could not read capabilities file {path}: {e}")
            return cls()

        capabilities = _extract_section(markdown, "Current Capabilities")
        limitations = _extract_section(markdown, "Limitations")
        if not capabilities or not limitations:
            logger.warning(f"Capabilities file {path} is missing a section; using defaults for it")
        logger.info(f"Loaded capabilities from {path}")
        return cls(
            capabilities=capabilities or DEFAULT_CAPABILITIES,
            limitations=limitations or DEFAULT_LIMITATIONS,
        )
