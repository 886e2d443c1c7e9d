"""Luma event platform client."""

from .client import LumaClient
from .errors import LumaAuthError, LumaConfigError, LumaError, LumaNotFoundError

__all__ = ["LumaClient", "LumaAuthError", "LumaConfigError", "LumaError", "LumaNotFoundError"]
