"""Luma public API client (thin async wrapper over httpx)."""

import logging
from typing import Any, Optional

import httpx

from .errors import LumaAuthError, LumaConfigError, LumaError, LumaNotFoundError

logger = logging.getLogger("sonic.luma")

DEFAULT_BASE_URL = "https://api.lu.ma/public/v1"
GUEST_STATUSES = ("approved", "declined")


def _clean_params(params: dict) -> dict:
    """Drop unset query parameters."""
    return {k: v for k, v in params.items() if v is not None}


class LumaClient:
    """Client for one organization's Luma calendar.

    A client is cheap to build; one is created per turn from the org's key.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise LumaConfigError("init", detail="missing API key")
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "x-luma-api-key": self._api_key,
            },
        )

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        target: Optional[str] = None,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> Any:
        try:
            async with self._client() as client:
                resp = await client.request(method, path, params=params, json=json)
                resp.raise_for_status()
                data = resp.json() if resp.content else {}
        except httpx.HTTPStatusError as e:
            code = e.response.status_code
            logger.error(f"Luma API error ({operation}, {target}): HTTP {code} {e.response.text[:200]}")
            if code in (401, 403):
                raise LumaAuthError(operation, target, "check the API key") from e
            if code == 404:
                raise LumaNotFoundError(operation, target, "check the id") from e
            raise LumaError(operation, target, f"HTTP {code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Luma transport error ({operation}, {target}): {type(e).__name__}: {e}")
            raise LumaError(operation, target, type(e).__name__) from e
        except ValueError as e:
            raise LumaError(operation, target, "invalid JSON response") from e

        logger.info(f"Luma API success ({operation}{', ' + target if target else ''})")
        return data

    # ── Endpoints ────────────────────────────────────────────

    async def get_self(self) -> dict:
        """Fetch the user owning the API key (used to validate a key)."""
        return await self._request("GET", "/user/get-self", "getSelf")

    async def list_events(
        self,
        after: Optional[str] = None,
        before: Optional[str] = None,
        pagination_cursor: Optional[str] = None,
        pagination_limit: Optional[int] = None,
    ) -> dict:
        """List calendar events. Returns {entries, has_more, next_cursor}."""
        params = _clean_params({
            "after": after,
            "before": before,
            "pagination_cursor": pagination_cursor,
            "pagination_limit": pagination_limit,
        })
        return await self._request("GET", "/calendar/list-events", "listEvents", params=params)

    async def get_event(self, event_id: str) -> dict:
        """Fetch one event's full details (the nested ``event`` object)."""
        data = await self._request(
            "GET", "/event/get", "getEvent", target=event_id, params={"api_id": event_id},
        )
        return data.get("event") or {}

    async def get_guests(
        self,
        event_id: str,
        approval_status: Optional[str] = None,
        pagination_cursor: Optional[str] = None,
        pagination_limit: Optional[int] = None,
    ) -> dict:
        """List guests for an event. Returns {entries, has_more, next_cursor}."""
        params = _clean_params({
            "event_api_id": event_id,
            "approval_status": approval_status,
            "pagination_cursor": pagination_cursor,
            "pagination_limit": pagination_limit,
        })
        return await self._request("GET", "/event/get-guests", "getGuests", target=event_id, params=params)

    async def update_guest_status(
        self,
        event_id: str,
        guest_email: str,
        status: str,
        should_refund: bool = False,
    ) -> dict:
        """Approve or decline a guest identified by email."""
        if status not in GUEST_STATUSES:
            raise ValueError(f"status must be one of {GUEST_STATUSES}, got {status!r}")
        body = {
            "guest": {"type": "email", "email": guest_email},
            "event_api_id": event_id,
            "status": status,
            "should_refund": should_refund,
        }
        return await self._request(
            "POST", "/event/update-guest-status", "updateGuestStatus", target=event_id, json=body,
        )
