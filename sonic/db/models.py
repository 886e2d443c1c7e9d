"""Database query helpers for Sonic tables."""

import json
from typing import Optional

from .connection import get_connection, get_transaction


# ============================================================
# ORGS / LINKING
# ============================================================

async def get_org_for_chat(user_id: Optional[int], chat_id: int, is_direct: bool) -> Optional[dict]:
    """Find the org linked to a chat.

    Direct chats resolve through the user row, shared chats through the
    group row.
    """
    async with get_connection() as conn:
        if is_direct:
            if user_id is None:
                return None
            row = await conn.fetchrow("""
                SELECT o.id, o.name, o.luma_api_key
                FROM users u JOIN orgs o ON o.id = u.org_id
                WHERE u.id = $1
            """, user_id)
        else:
            row = await conn.fetchrow("""
                SELECT o.id, o.name, o.luma_api_key
                FROM groups g JOIN orgs o ON o.id = g.org_id
                WHERE g.id = $1
            """, chat_id)
        return dict(row) if row else None


async def link_chat(
    org_id: str,
    org_name: str,
    luma_api_key: str,
    chat_id: int,
    is_direct: bool,
    user_id: Optional[int] = None,
    first_name: Optional[str] = None,
    username: Optional[str] = None,
    group_name: Optional[str] = None,
) -> None:
    """Upsert the org and attach the user (direct) or group (shared) to it."""
    async with get_transaction() as conn:
        await conn.execute("""
            INSERT INTO orgs (id, name, luma_api_key) VALUES ($1, $2, $3)
            ON CONFLICT (id) DO UPDATE SET luma_api_key = $3, updated_at = NOW()
        """, org_id, org_name, luma_api_key)

        if is_direct:
            await conn.execute("""
                INSERT INTO users (id, first_name, username, org_id) VALUES ($1, $2, $3, $4)
                ON CONFLICT (id) DO UPDATE
                SET org_id = $4, first_name = $2, username = $3, updated_at = NOW()
            """, user_id, first_name, username, org_id)
        else:
            await conn.execute("""
                INSERT INTO groups (id, name, org_id) VALUES ($1, $2, $3)
                ON CONFLICT (id) DO UPDATE SET org_id = $3, name = $2, updated_at = NOW()
            """, chat_id, group_name, org_id)


# ============================================================
# AUDIT LOG
# ============================================================

async def insert_audit_entry(entry) -> None:
    """Append one audit row. Never updates or deletes."""
    async with get_connection() as conn:
        await conn.execute("""
            INSERT INTO audit_log (timestamp, action_type, org_id, user_id, group_id, success, details)
            VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb)
        """,
            entry.timestamp,
            entry.action_type,
            entry.org_id,
            entry.actor_user_id,
            entry.actor_group_id,
            entry.success,
            json.dumps(entry.details),
        )


async def get_audit_entries(org_id: str, limit: int = 20) -> list[dict]:
    """Most recent audit rows for an org."""
    async with get_connection() as conn:
        rows = await conn.fetch("""
            SELECT timestamp, action_type, user_id, group_id, success, details
            FROM audit_log WHERE org_id = $1
            ORDER BY timestamp DESC LIMIT $2
        """, org_id, limit)
        result = []
        for row in rows:
            item = dict(row)
            if isinstance(item.get("details"), str):
                try:
                    item["details"] = json.loads(item["details"])
                except (json.JSONDecodeError, TypeError):
                    item["details"] = {}
            result.append(item)
        return result
