"""Event reference resolution against the current context list.

An explicit id is accepted only if it is in the list. A free-text name is
matched case-insensitively as a substring of each event name: one match
resolves, several produce an AmbiguityMatch in context order, none is an
error. There is no fuzzy matching and no ranking.
"""

import logging
from typing import Optional, Sequence, Union

from .types import AmbiguityMatch, EventRef

logger = logging.getLogger("sonic.references")


class EventReferenceError(Exception):
    """Base for event reference failures (user-facing message in str())."""
    pass


class EventNotFoundError(EventReferenceError):
    def __init__(self, event_id: str):
        super().__init__(
            f"I couldn't find an event with id {event_id} in your current event list."
        )
        self.event_id = event_id


class NoEventMatchError(EventReferenceError):
    def __init__(self, name: str):
        super().__init__(f'No event matches the name "{name}".')
        self.name = name


class MissingReferenceError(EventReferenceError):
    def __init__(self):
        super().__init__("Which event do you mean? Please give me the event name or id.")


def find_by_id(events: Sequence[EventRef], event_id: str) -> Optional[EventRef]:
    """First event with this id (duplicates resolve to the first)."""
    for event in events:
        if event.id == event_id:
            return event
    return None


def match_by_name(events: Sequence[EventRef], name: str) -> list[EventRef]:
    """All events whose name contains ``name`` (case-insensitive), in order."""
    needle = name.strip().lower()
    if not needle:
        return []
    return [e for e in events if needle in (e.name or "").lower()]


def resolve_reference(
    events: Sequence[EventRef],
    event_id: Optional[str] = None,
    event_name: Optional[str] = None,
) -> Union[EventRef, AmbiguityMatch]:
    """Resolve an event mention to one EventRef or an AmbiguityMatch.

    Raises:
        EventNotFoundError: explicit id not in the list.
        NoEventMatchError: name matches nothing.
        MissingReferenceError: neither id nor name given.
    """
    event_id = (event_id or "").strip()
    event_name = (event_name or "").strip()

    if event_id:
        event = find_by_id(events, event_id)
        if event is None:
            logger.info(f"Event id {event_id} not in context ({len(events)} events)")
            raise EventNotFoundError(event_id)
        return event

    if event_name:
        matches = match_by_name(events, event_name)
        if not matches:
            raise NoEventMatchError(event_name)
        if len(matches) == 1:
            return matches[0]
        logger.info(f"Ambiguous event name {event_name!r}: {len(matches)} candidates")
        return AmbiguityMatch(query=event_name, candidates=tuple(matches))

    raise MissingReferenceError()


def same_name_siblings(events: Sequence[EventRef], event: EventRef) -> list[EventRef]:
    """Events sharing ``event``'s name exactly (case-insensitive), in order."""
    key = (event.name or "").strip().lower()
    return [e for e in events if (e.name or "").strip().lower() == key]
