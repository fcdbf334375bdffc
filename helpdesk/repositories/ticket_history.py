from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

HISTORY_SELECT = "*, actor:profiles!ticket_history_changed_by_fkey (id, email, full_name)"


async def insert_entry(
    client: Any,
    *,
    ticket_id: str,
    changed_by: str,
    field_changed: str,
    old_value: str | None,
    new_value: str | None,
) -> None:
    await client.table("ticket_history").insert(
        {
            "ticket_id": ticket_id,
            "changed_by": changed_by,
            "field_changed": field_changed,
            "old_value": old_value,
            "new_value": new_value,
            "change_date": datetime.now(timezone.utc).isoformat(),
        }
    ).execute()


async def list_entries(client: Any, ticket_id: str) -> list[dict[str, Any]]:
    response = await (
        client.table("ticket_history")
        .select(HISTORY_SELECT)
        .eq("ticket_id", ticket_id)
        .order("change_date", desc=True)
        .execute()
    )
    return [dict(row) for row in response.data or []]
