"""Action dispatcher — validate, then execute exactly one upstream call.

One handler per ToolName. Parameters are validated before anything is
sent upstream; a call with missing or malformed data never leaves the
process. updateGuestStatus is the only state-changing tool, and every
attempt that reaches the upstream call produces exactly one audit entry,
success or failure, before the result is returned.
"""

import logging
import re
from typing import Awaitable, Callable

from ..audit.recorder import AuditContext, AuditRecorder
from ..luma.client import GUEST_STATUSES, LumaClient
from ..luma.errors import LumaAuthError, LumaError, LumaNotFoundError
from .types import ActionResult, ToolCall, ToolName

logger = logging.getLogger("sonic.dispatch")

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

GUEST_FILTERS = ("approved", "pending_approval", "declined", "waitlist", "invited")

# new_status → audit action type
_AUDIT_ACTIONS = {"approved": "approve_guest", "declined": "reject_guest"}


class ValidationError(ValueError):
    """A tool parameter is missing or malformed."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


def _require(params: dict, name: str) -> str:
    value = (params.get(name) or "").strip()
    if not value:
        raise ValidationError(name, f"Missing required parameter '{name}'.")
    return value


def validate_get_guests(params: dict) -> dict:
    event_id = _require(params, "event_id")
    status_filter = (params.get("status_filter") or "").strip().lower() or None
    if status_filter and status_filter not in GUEST_FILTERS:
        raise ValidationError(
            "status_filter",
            f"Invalid status_filter '{status_filter}'. Use one of: {', '.join(GUEST_FILTERS)}.",
        )
    return {"event_id": event_id, "status_filter": status_filter}


def validate_get_event(params: dict) -> dict:
    return {"event_id": _require(params, "event_id")}


def validate_update_guest_status(params: dict) -> dict:
    event_id = _require(params, "event_id")
    guest_email = _require(params, "guest_email")
    if not _EMAIL_RE.match(guest_email):
        raise ValidationError("guest_email", f"Invalid guest_email '{guest_email}': it doesn't look like an email address.")
    new_status = _require(params, "new_status").lower()
    if new_status not in GUEST_STATUSES:
        raise ValidationError(
            "new_status",
            f"Invalid new_status '{new_status}'. It must be 'approved' or 'declined'.",
        )
    should_refund = str(params.get("should_refund", "")).strip().lower() in ("true", "1", "yes")
    return {
        "event_id": event_id,
        "guest_email": guest_email,
        "new_status": new_status,
        "should_refund": should_refund,
    }


def _error_kind(error: LumaError) -> str:
    if isinstance(error, LumaAuthError):
        return "auth"
    if isinstance(error, LumaNotFoundError):
        return "not_found"
    return "upstream"


class ActionDispatcher:
    """Executes ToolCalls against one organization's Luma client."""

    def __init__(self, client: LumaClient, audit: AuditRecorder, audit_context: AuditContext):
        self.client = client
        self.audit = audit
        self.audit_context = audit_context
        self._handlers: dict[ToolName, Callable[[dict], Awaitable[ActionResult]]] = {
            ToolName.GET_GUESTS: self._get_guests,
            ToolName.GET_EVENT: self._get_event,
            ToolName.UPDATE_GUEST_STATUS: self._update_guest_status,
        }
        self._validators: dict[ToolName, Callable[[dict], dict]] = {
            ToolName.GET_GUESTS: validate_get_guests,
            ToolName.GET_EVENT: validate_get_event,
            ToolName.UPDATE_GUEST_STATUS: validate_update_guest_status,
        }

    async def dispatch(self, call: ToolCall) -> ActionResult:
        handler = self._handlers.get(call.tool)
        validator = self._validators.get(call.tool)
        if handler is None or validator is None:
            logger.error(f"No handler for tool {call.tool!r}")
            return ActionResult(
                tool=call.tool,
                error="Unknown action requested.",
                error_kind="unknown_tool",
                params=dict(call.params),
            )

        try:
            params = validator(call.params)
        except ValidationError as e:
            logger.info(f"Rejected {call.tool.value}: {e.field}: {e}")
            return ActionResult(
                tool=call.tool,
                event_id=call.params.get("event_id"),
                error=str(e),
                error_kind="validation",
                params=dict(call.params),
            )

        logger.info(f"Dispatching {call.tool.value} {params}")
        return await handler(params)

    # ── Handlers ─────────────────────────────────────────────

    async def _get_guests(self, params: dict) -> ActionResult:
        event_id = params["event_id"]
        try:
            data = await self.client.get_guests(event_id, approval_status=params["status_filter"])
        except LumaError as e:
            return self._upstream_failure(ToolName.GET_GUESTS, params, e)
        return ActionResult(tool=ToolName.GET_GUESTS, event_id=event_id, data=data, params=params)

    async def _get_event(self, params: dict) -> ActionResult:
        event_id = params["event_id"]
        try:
            data = await self.client.get_event(event_id)
        except LumaError as e:
            return self._upstream_failure(ToolName.GET_EVENT, params, e)
        return ActionResult(tool=ToolName.GET_EVENT, event_id=event_id, data=data, params=params)

    async def _update_guest_status(self, params: dict) -> ActionResult:
        event_id = params["event_id"]
        new_status = params["new_status"]
        action_type = _AUDIT_ACTIONS[new_status]
        details = {
            "event_id": event_id,
            "guest_email": params["guest_email"],
            "new_status": new_status,
        }

        try:
            data = await self.client.update_guest_status(
                event_id,
                params["guest_email"],
                new_status,
                should_refund=params["should_refund"],
            )
        except LumaError as e:
            await self.audit.record_for(
                self.audit_context,
                f"{action_type}_failed",
                success=False,
                details={**details, "error": str(e)},
            )
            return self._upstream_failure(ToolName.UPDATE_GUEST_STATUS, params, e)
        except Exception as e:
            # Still one entry for the attempt; the outer handler reports the error
            await self.audit.record_for(
                self.audit_context,
                f"{action_type}_failed",
                success=False,
                details={**details, "error": f"{type(e).__name__}: {e}"},
            )
            raise

        await self.audit.record_for(self.audit_context, action_type, success=True, details=details)
        return ActionResult(
            tool=ToolName.UPDATE_GUEST_STATUS,
            event_id=event_id,
            data={"guest_email": params["guest_email"], "status": new_status, "response": data},
            params=params,
        )

    @staticmethod
    def _upstream_failure(tool: ToolName, params: dict, error: LumaError) -> ActionResult:
        logger.error(f"{tool.value} failed for {params.get('event_id')}: {error}")
        return ActionResult(
            tool=tool,
            event_id=params.get("event_id"),
            error=f"Couldn't complete {tool.value} for event {params.get('event_id')}: Luma {error.kind}.",
            error_kind=_error_kind(error),
            params=params,
        )
