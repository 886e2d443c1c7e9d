"""Tests for event reference resolution."""

import pytest

from sonic.core.references import (
    EventNotFoundError,
    MissingReferenceError,
    NoEventMatchError,
    find_by_id,
    match_by_name,
    resolve_reference,
    same_name_siblings,
)
from sonic.core.types import AmbiguityMatch, EventRef


class TestResolveById:
    def test_known_id(self, events):
        assert resolve_reference(events, event_id="evt-1").name == "ETHDenver"

    def test_unknown_id(self, events):
        with pytest.raises(EventNotFoundError) as exc:
            resolve_reference(events, event_id="evt-999")
        assert "evt-999" in str(exc.value)

    def test_id_wins_over_name(self, events):
        assert resolve_reference(events, event_id="evt-4", event_name="ETH").id == "evt-4"

    def test_duplicate_ids_resolve_to_first(self):
        dupes = [EventRef(id="evt-1", name="First"), EventRef(id="evt-1", name="Second")]
        assert find_by_id(dupes, "evt-1").name == "First"


class TestResolveByName:
    def test_single_match_case_insensitive(self, events):
        assert resolve_reference(events, event_name="ethdenver").id == "evt-1"

    def test_substring_match(self, events):
        assert resolve_reference(events, event_name="breakpoint").id == "evt-4"

    def test_ambiguous_keeps_context_order(self, events):
        result = resolve_reference(events, event_name="ETH Summit")
        assert isinstance(result, AmbiguityMatch)
        assert [e.id for e in result.candidates] == ["evt-2", "evt-3"]

    def test_ambiguous_prompt_lists_each_candidate(self, events):
        prompt = resolve_reference(events, event_name="summit").to_prompt()
        assert "1. ETH Summit (id: evt-2)" in prompt
        assert "2. ETH Summit (id: evt-3)" in prompt

    def test_no_match(self, events):
        with pytest.raises(NoEventMatchError) as exc:
            resolve_reference(events, event_name="Devcon")
        assert "Devcon" in str(exc.value)

    def test_no_fuzzy_matching(self, events):
        with pytest.raises(NoEventMatchError):
            resolve_reference(events, event_name="ETHDenvr")

    def test_blank_name_matches_nothing(self, events):
        assert match_by_name(events, "   ") == []


class TestMissingReference:
    def test_neither_given(self, events):
        with pytest.raises(MissingReferenceError):
            resolve_reference(events)

    def test_blank_values(self, events):
        with pytest.raises(MissingReferenceError):
            resolve_reference(events, event_id=" ", event_name="")


class TestSameNameSiblings:
    def test_shared_name(self, events):
        siblings = same_name_siblings(events, events[1])
        assert [e.id for e in siblings] == ["evt-2", "evt-3"]

    def test_unique_name(self, events):
        assert same_name_siblings(events, events[0]) == [events[0]]
