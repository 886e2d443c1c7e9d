"""Event context provider — the grounding snapshot for one turn.

Fetched fresh every turn, never cached. A failed first page degrades to an
empty, unavailable context instead of failing the turn; a failure on a later
page keeps the events already loaded. A failed detail fetch drops only that
event.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from ..luma.client import LumaClient
from ..luma.errors import LumaError
from .types import EventRef

logger = logging.getLogger("sonic.context")


@dataclass
class EventContext:
    events: list = field(default_factory=list)   # list[EventRef]
    available: bool = True
    has_more: bool = False

    def render(self) -> str:
        """Prompt block: one ``name (id: X, starts: Y)`` line per event."""
        if not self.available:
            return "Event list could not be loaded right now; no event context available."
        if not self.events:
            return "No specific event context available."
        lines = [f"- {e.context_line()}" for e in self.events]
        if self.has_more:
            lines.append("- (more events exist beyond this list)")
        return "Known Luma events:\n" + "\n".join(lines)


def event_location(event: dict) -> Optional[str]:
    geo = event.get("geo_address_json") or {}
    if isinstance(geo, dict):
        for key in ("full_address", "address", "city_state", "city"):
            if geo.get(key):
                return str(geo[key])
    return event.get("location") or None


def event_ref_from_api(entry: dict) -> Optional[EventRef]:
    """Map a list-events entry (or bare event object) to an EventRef."""
    event = entry.get("event") if isinstance(entry.get("event"), dict) else entry
    event_id = event.get("api_id") or entry.get("api_id") or event.get("id")
    if not event_id:
        return None
    return EventRef(
        id=str(event_id),
        name=event.get("name") or "Unnamed event",
        start_at=event.get("start_at"),
    )


async def _with_details(client: LumaClient, ref: EventRef) -> EventRef:
    detail = await client.get_event(ref.id)
    return EventRef(
        id=ref.id,
        name=detail.get("name") or ref.name,
        start_at=detail.get("start_at") or ref.start_at,
        location=event_location(detail),
    )


async def fetch_event_details(client: LumaClient, events: list) -> list:
    """Fetch full details for every event concurrently.

    Individual failures are logged and the event is dropped from context.
    """
    results = await asyncio.gather(
        *(_with_details(client, ref) for ref in events),
        return_exceptions=True,
    )
    enriched = []
    for ref, result in zip(events, results):
        if isinstance(result, BaseException):
            logger.warning(f"Detail fetch failed for {ref.id}, dropping from context: {result}")
            continue
        enriched.append(result)
    return enriched


async def fetch_event_context(
    client: LumaClient,
    max_pages: int = 5,
    include_details: bool = False,
) -> EventContext:
    """Build the grounding context for one turn."""
    events: list[EventRef] = []
    cursor = None
    has_more = False
    pages = 0

    try:
        for _ in range(max_pages):
            page = await client.list_events(pagination_cursor=cursor)
            pages += 1
            for entry in page.get("entries") or []:
                ref = event_ref_from_api(entry)
                if ref:
                    events.append(ref)
            has_more = bool(page.get("has_more"))
            cursor = page.get("next_cursor")
            if not has_more or not cursor:
                break
    except LumaError as e:
        if not pages:
            logger.error(f"Failed to fetch event context: {e}")
            return EventContext(events=[], available=False)
        # Keep what loaded; more events exist beyond the failed page
        logger.warning(f"Event list page {pages + 1} failed, keeping {len(events)} events: {e}")
        has_more = True

    if include_details and events:
        events = await fetch_event_details(client, events)

    logger.info(f"Fetched {len(events)} events for context (has_more={has_more})")
    return EventContext(events=events, available=True, has_more=has_more)
