"""Luma API exception hierarchy.

Every error carries the operation that was attempted and the id it
targeted, so callers can report "getGuests on evt-123 failed" without
re-deriving it.
"""

from typing import Optional


class LumaError(Exception):
    """Base class for Luma API failures."""

    kind = "request failed"

    def __init__(self, operation: str, target: Optional[str] = None, detail: str = ""):
        self.operation = operation
        self.target = target
        self.detail = detail
        super().__init__(self.describe())

    def describe(self) -> str:
        where = f"{self.operation} ({self.target})" if self.target else self.operation
        msg = f"Luma {self.kind} during {where}"
        if self.detail:
            msg += f": {self.detail}"
        return msg


class LumaAuthError(LumaError):
    """401/403 — API key rejected."""

    kind = "authentication failed"


class LumaNotFoundError(LumaError):
    """404 — event or guest does not exist upstream."""

    kind = "resource not found"


class LumaConfigError(LumaError):
    """No usable API key for the organization."""

    kind = "configuration error"
