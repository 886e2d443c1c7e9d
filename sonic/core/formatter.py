"""Response formatting — turn raw action results into a readable draft.

Lists get a count first and one line per item; empty results say so
explicitly; results with more data upstream say that too. One model call
shapes the draft; if it fails, the deterministic rendering is used as is.
"""

import json
import logging
from collections import Counter
from typing import Optional

import httpx

from ..llm.provider import ChatMessage, LLMError, LLMProvider
from .context import event_location
from .types import ActionResult, ToolName

logger = logging.getLogger("sonic.formatter")

MORE_GUESTS_NOTE = "More guests exist beyond this list (only the first page was fetched)."

FORMAT_PROMPT = """\
Format the following JSON data for a chat reply about: "{request}".
- If it's a list of guests, state the total count first, then list each guest with name, email and status using simple bullet points.
- If it's event details, list the key information (name, id, start time, location, link).
- Always mention the event id ({event_id}){status_clause}.
- If the data is empty, state clearly that none were found.
- If "has_more" is true, say that more results exist beyond this list.
- Do not add information that is not in the data.

Raw Data:
```json
{data}
```

Formatted Output:"""


def _guest_fields(entry: dict) -> dict:
    guest = entry.get("guest") if isinstance(entry.get("guest"), dict) else entry
    return {
        "name": guest.get("name") or guest.get("user_name") or "N/A",
        "email": guest.get("email") or guest.get("user_email") or "N/A",
        "status": guest.get("approval_status") or "unknown",
    }


def compact_data(result: ActionResult) -> dict:
    """Keep only the salient fields, so prompts stay small."""
    if result.tool is ToolName.GET_GUESTS:
        data = result.data or {}
        return {
            "event_id": result.event_id,
            "status_filter": result.params.get("status_filter"),
            "guests": [_guest_fields(e) for e in data.get("entries") or []],
            "has_more": result.has_more,
        }
    if result.tool is ToolName.GET_EVENT:
        event = result.data or {}
        return {
            "name": event.get("name"),
            "id": event.get("api_id") or result.event_id,
            "start_at": event.get("start_at"),
            "end_at": event.get("end_at"),
            "timezone": event.get("timezone"),
            "location": event_location(event),
            "url": event.get("url"),
        }
    return dict(result.data or {})


def render_guests(result: ActionResult) -> str:
    data = compact_data(result)
    guests = data["guests"]
    status_filter = data["status_filter"]
    suffix = f' with status "{status_filter}"' if status_filter else ""

    if not guests:
        text = f"No guests found for event {result.event_id}{suffix}."
        if data["has_more"]:
            text += "\n" + MORE_GUESTS_NOTE
        return text

    lines = [f"Found {len(guests)} guests for event {result.event_id}{suffix}:"]
    for i, g in enumerate(guests, 1):
        lines.append(f"{i}. {g['name']} ({g['email']}) - Status: {g['status']}")

    counts = Counter(g["status"] for g in guests)
    if not status_filter and len(counts) > 1:
        lines.append("By status: " + ", ".join(f"{s}: {n}" for s, n in counts.items()))
    if data["has_more"]:
        lines.append(MORE_GUESTS_NOTE)
    return "\n".join(lines)


def render_event(result: ActionResult) -> str:
    event = compact_data(result)
    if not event.get("name"):
        return f"No details found for event {result.event_id}."
    lines = [f"{event['name']} (id: {event['id']})"]
    if event.get("start_at"):
        lines.append(f"Starts: {event['start_at']}" + (f" ({event['timezone']})" if event.get("timezone") else ""))
    if event.get("end_at"):
        lines.append(f"Ends: {event['end_at']}")
    if event.get("location"):
        lines.append(f"Location: {event['location']}")
    if event.get("url"):
        lines.append(f"Link: {event['url']}")
    return "\n".join(lines)


def render_update(result: ActionResult) -> str:
    data = result.data or {}
    verb = "Approved" if data.get("status") == "approved" else "Declined"
    return f"{verb} {data.get('guest_email')} for event {result.event_id}."


def render_result(result: ActionResult) -> str:
    """Deterministic rendering, also the fallback when the model fails."""
    if not result.ok:
        return result.error
    if result.tool is ToolName.GET_GUESTS:
        return render_guests(result)
    if result.tool is ToolName.GET_EVENT:
        return render_event(result)
    return render_update(result)


class ResponseFormatter:
    """Shapes list/detail results into a draft with one model call."""

    def __init__(self, provider: LLMProvider, model: Optional[str] = None):
        self.provider = provider
        self.model = model

    async def format(self, result: ActionResult, request: str) -> str:
        # Errors and confirmations are already final text
        if not result.ok or result.tool is ToolName.UPDATE_GUEST_STATUS:
            return render_result(result)

        status_filter = result.params.get("status_filter")
        prompt = FORMAT_PROMPT.format(
            request=request.replace('"', "'"),
            event_id=result.event_id,
            status_clause=f' and the status filter "{status_filter}"' if status_filter else "",
            data=json.dumps(compact_data(result), indent=2, ensure_ascii=False),
        )
        try:
            response = await self.provider.chat(
                [ChatMessage(role="user", content=prompt)],
                model=self.model,
                temperature=0.2,
            )
        except (LLMError, httpx.HTTPError) as e:
            logger.warning(f"Format call failed ({type(e).__name__}: {e}); using plain rendering")
            return render_result(result)

        text = (response.content or "").strip()
        if not text:
            logger.warning("Format call returned no text; using plain rendering")
            return render_result(result)
        return text
