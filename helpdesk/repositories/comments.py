from __future__ import annotations

from typing import Any, Mapping

from helpdesk.core.backend import BackendError
from helpdesk.repositories.profiles import PROFILE_COLUMNS
from helpdesk.repositories.tickets import TicketRecord, normalise_comment

COMMENT_SELECT = f"*, user:profiles!comments_user_id_fkey ({PROFILE_COLUMNS})"


async def insert_comment(client: Any, payload: Mapping[str, Any]) -> TicketRecord:
    inserted = await client.table("comments").insert(dict(payload)).execute()
    rows = inserted.data or []
    comment_id = rows[0].get("id") if rows else None
    if not comment_id:
        raise BackendError("Comment insert returned no row")
    response = await (
        client.table("comments")
        .select(COMMENT_SELECT)
        .eq("id", comment_id)
        .single()
        .execute()
    )
    return normalise_comment(response.data)


async def list_comments(client: Any, ticket_id: str) -> list[TicketRecord]:
    response = await (
        client.table("comments")
        .select(COMMENT_SELECT)
        .eq("ticket_id", ticket_id)
        .order("created_at")
        .execute()
    )
    return [normalise_comment(row) for row in response.data or []]
