"""Tests for the action dispatcher: validation, upstream calls, audit."""

import pytest
from unittest.mock import AsyncMock

from sonic.audit.recorder import AuditContext, AuditRecorder
from sonic.core.dispatcher import (
    ActionDispatcher,
    ValidationError,
    validate_get_guests,
    validate_update_guest_status,
)
from sonic.core.types import ToolCall, ToolName
from sonic.luma.errors import LumaAuthError, LumaError, LumaNotFoundError


def _update(email="ana@example.com", status="approved", event_id="evt-1"):
    return ToolCall.build("updateGuestStatus", {
        "event_id": event_id, "guest_email": email, "new_status": status,
    })


# ── Validation ──────────────────────────────────────────────

class TestValidators:
    def test_get_guests_requires_event(self):
        with pytest.raises(ValidationError) as exc:
            validate_get_guests({})
        assert exc.value.field == "event_id"

    def test_get_guests_status_filter_normalized(self):
        assert validate_get_guests({"event_id": "evt-1", "status_filter": "Pending_Approval"}) == {
            "event_id": "evt-1", "status_filter": "pending_approval",
        }

    def test_get_guests_bad_filter(self):
        with pytest.raises(ValidationError) as exc:
            validate_get_guests({"event_id": "evt-1", "status_filter": "vip"})
        assert exc.value.field == "status_filter"

    @pytest.mark.parametrize("email", ["not-an-email", "a@b", "a b@c.d", "@example.com"])
    def test_bad_email(self, email):
        with pytest.raises(ValidationError) as exc:
            validate_update_guest_status({"event_id": "evt-1", "guest_email": email, "new_status": "approved"})
        assert exc.value.field == "guest_email"

    def test_bad_status(self):
        with pytest.raises(ValidationError) as exc:
            validate_update_guest_status({"event_id": "evt-1", "guest_email": "a@b.co", "new_status": "pending"})
        assert exc.value.field == "new_status"

    def test_should_refund_parsed(self):
        params = validate_update_guest_status({
            "event_id": "evt-1", "guest_email": "a@b.co", "new_status": "DECLINED", "should_refund": "true",
        })
        assert params["new_status"] == "declined"
        assert params["should_refund"] is True


# ── Dispatch ────────────────────────────────────────────────

class TestDispatchReads:
    @pytest.mark.asyncio
    async def test_get_guests(self, luma, audit, direct_ctx):
        luma.get_guests.return_value = {"entries": [{"guest": {"email": "a@b.co"}}], "has_more": True}
        result = await ActionDispatcher(luma, audit, direct_ctx).dispatch(
            ToolCall.build("getGuests", {"event_id": "evt-1", "status_filter": "approved"})
        )
        assert result.ok
        assert result.has_more
        assert result.event_id == "evt-1"
        luma.get_guests.assert_awaited_once_with("evt-1", approval_status="approved")

    @pytest.mark.asyncio
    async def test_get_event(self, luma, audit, direct_ctx):
        luma.get_event.return_value = {"name": "ETHDenver"}
        result = await ActionDispatcher(luma, audit, direct_ctx).dispatch(
            ToolCall.build("getEvent", {"event_id": "evt-1"})
        )
        assert result.data == {"name": "ETHDenver"}

    @pytest.mark.asyncio
    async def test_validation_failure_makes_no_call(self, luma, audit, audit_storage, direct_ctx):
        result = await ActionDispatcher(luma, audit, direct_ctx).dispatch(_update(email="nope"))
        assert result.error_kind == "validation"
        assert "guest_email" in result.error and "nope" in result.error
        luma.update_guest_status.assert_not_awaited()
        audit_storage.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_tool(self, luma, audit, direct_ctx):
        dispatcher = ActionDispatcher(luma, audit, direct_ctx)
        dispatcher._handlers.pop(ToolName.GET_EVENT)
        result = await dispatcher.dispatch(ToolCall.build("getEvent", {"event_id": "evt-1"}))
        assert result.error_kind == "unknown_tool"
        luma.get_event.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error, kind", [
        (LumaAuthError("getGuests", "evt-1"), "auth"),
        (LumaNotFoundError("getGuests", "evt-1"), "not_found"),
        (LumaError("getGuests", "evt-1", "HTTP 502"), "upstream"),
    ])
    async def test_upstream_errors(self, luma, audit, direct_ctx, error, kind):
        luma.get_guests.side_effect = error
        result = await ActionDispatcher(luma, audit, direct_ctx).dispatch(
            ToolCall.build("getGuests", {"event_id": "evt-1"})
        )
        assert result.error_kind == kind
        assert "getGuests" in result.error
        assert "evt-1" in result.error


class TestDispatchUpdate:
    @pytest.mark.asyncio
    async def test_success_is_audited(self, luma, audit, audit_storage, direct_ctx):
        result = await ActionDispatcher(luma, audit, direct_ctx).dispatch(_update())

        assert result.ok
        luma.update_guest_status.assert_awaited_once_with(
            "evt-1", "ana@example.com", "approved", should_refund=False,
        )
        entry = audit_storage.await_args.args[0]
        assert entry.action_type == "approve_guest"
        assert entry.success is True
        assert entry.org_id == "org-1"
        assert entry.actor_user_id == 42
        assert entry.actor_group_id is None
        assert entry.details == {"event_id": "evt-1", "guest_email": "ana@example.com", "new_status": "approved"}

    @pytest.mark.asyncio
    async def test_failure_is_audited(self, luma, audit, audit_storage):
        luma.update_guest_status.side_effect = LumaNotFoundError("updateGuestStatus", "evt-1")
        group_ctx = AuditContext.for_chat("org-1", user_id=42, chat_id=-100, is_direct=False)

        result = await ActionDispatcher(luma, audit, group_ctx).dispatch(_update(status="declined"))

        assert result.error_kind == "not_found"
        entry = audit_storage.await_args.args[0]
        assert entry.action_type == "reject_guest_failed"
        assert entry.success is False
        assert entry.actor_group_id == -100
        assert entry.actor_user_id is None
        assert "error" in entry.details

    @pytest.mark.asyncio
    async def test_one_entry_per_attempt(self, luma, audit, audit_storage, direct_ctx):
        dispatcher = ActionDispatcher(luma, audit, direct_ctx)
        await dispatcher.dispatch(_update())
        luma.update_guest_status.side_effect = LumaError("updateGuestStatus", "evt-1")
        await dispatcher.dispatch(_update())
        assert [c.args[0].action_type for c in audit_storage.await_args_list] == [
            "approve_guest", "approve_guest_failed",
        ]

    @pytest.mark.asyncio
    async def test_unexpected_error_is_audited_and_raised(self, luma, audit, audit_storage, direct_ctx):
        luma.update_guest_status.side_effect = RuntimeError("boom")
        with pytest.raises(RuntimeError):
            await ActionDispatcher(luma, audit, direct_ctx).dispatch(_update())
        audit_storage.assert_awaited_once()
        entry = audit_storage.await_args.args[0]
        assert entry.action_type == "approve_guest_failed"
        assert entry.success is False
        assert entry.details["error"] == "RuntimeError: boom"

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_change_outcome(self, luma, direct_ctx):
        audit = AuditRecorder(storage=AsyncMock(side_effect=RuntimeError("db down")))
        result = await ActionDispatcher(luma, audit, direct_ctx).dispatch(_update())
        assert result.ok
