"""Audit recorder — one append-only entry per state-changing attempt.

Writes are best-effort: a storage failure is logged and never changes the
outcome reported for the action itself.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("sonic.audit")


@dataclass(frozen=True)
class AuditContext:
    """Who triggered the action. Exactly one of user_id / group_id is set."""

    org_id: str
    user_id: Optional[int] = None
    group_id: Optional[int] = None

    @classmethod
    def for_chat(cls, org_id: str, user_id: Optional[int], chat_id: int, is_direct: bool) -> "AuditContext":
        if is_direct:
            return cls(org_id=org_id, user_id=user_id)
        return cls(org_id=org_id, group_id=chat_id)


@dataclass(frozen=True)
class AuditEntry:
    action_type: str
    org_id: str
    success: bool
    details: dict = field(default_factory=dict)
    actor_user_id: Optional[int] = None
    actor_group_id: Optional[int] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


AuditStorage = Callable[[AuditEntry], Awaitable[None]]


async def _default_storage(entry: AuditEntry) -> None:
    from ..db.models import insert_audit_entry
    await insert_audit_entry(entry)


class AuditRecorder:
    """Records audit entries through a storage callable."""

    def __init__(self, storage: Optional[AuditStorage] = None):
        self._storage = storage or _default_storage

    async def record(
        self,
        action_type: str,
        org_id: str,
        success: bool,
        details: Optional[dict] = None,
        actor_user_id: Optional[int] = None,
        actor_group_id: Optional[int] = None,
    ) -> bool:
        """Append one entry. Returns False if the write failed (already logged)."""
        if actor_user_id is not None and actor_group_id is not None:
            raise ValueError("Audit entry takes a user or a group actor, not both")

        entry = AuditEntry(
            action_type=action_type,
            org_id=org_id,
            success=success,
            details=dict(details or {}),
            actor_user_id=actor_user_id,
            actor_group_id=actor_group_id,
        )
        try:
            await self._storage(entry)
        except Exception as e:
            logger.error(f"Failed to write audit entry {action_type} for org {org_id}: {type(e).__name__}: {e}")
            return False
        logger.info(f"Audit: {action_type} org={org_id} success={success}")
        return True

    async def record_for(self, ctx: AuditContext, action_type: str, success: bool, details: dict) -> bool:
        return await self.record(
            action_type=action_type,
            org_id=ctx.org_id,
            success=success,
            details=details,
            actor_user_id=ctx.user_id,
            actor_group_id=ctx.group_id,
        )
