from __future__ import annotations

import re
from datetime import date, datetime, time, timezone
from typing import Any, Mapping

from helpdesk.core.backend import NOT_FOUND_CODE, BackendError
from helpdesk.core.logging import log_debug, log_info
from helpdesk.repositories.profiles import PROFILE_COLUMNS
from helpdesk.schemas.tickets import (
    AssigneeMatch,
    ListOptions,
    TicketFilters,
    ticket_reference,
)

TicketRecord = dict[str, Any]

TICKET_LIST_SELECT = (
    "*, categories (*), "
    f"creator:profiles!tickets_created_by_fkey ({PROFILE_COLUMNS}), "
    f"assignee:profiles!tickets_assigned_to_fkey ({PROFILE_COLUMNS}), "
    "comments (count)"
)

TICKET_DETAIL_SELECT = (
    "*, categories (*), "
    f"creator:profiles!tickets_created_by_fkey ({PROFILE_COLUMNS}), "
    f"assignee:profiles!tickets_assigned_to_fkey ({PROFILE_COLUMNS}), "
    "comments (id, content, is_internal, created_at, "
    f"user:profiles!comments_user_id_fkey ({PROFILE_COLUMNS}))"
)

TICKET_CREATED_SELECT = (
    "*, categories (*), creator:profiles!tickets_created_by_fkey (id, email, full_name)"
)

_OR_RESERVED = frozenset(',()":\\')
_LIKE_WILDCARDS = re.compile(r"([\\%_*])")


def quote_filter_value(value: Any) -> str:
    """Quote a value for use inside a PostgREST ``or`` expression when needed."""

    text = str(value)
    if any(char in _OR_RESERVED for char in text):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def escape_like(term: str) -> str:
    """Backslash-escape ``ilike`` wildcards so *term* matches literally."""

    return _LIKE_WILDCARDS.sub(r"\\\1", term)


def search_expression(term: str) -> str:
    pattern = quote_filter_value(f"%{escape_like(term)}%")
    return f"title.ilike.{pattern},description.ilike.{pattern}"


def involving_user_expression(user_id: str) -> str:
    value = quote_filter_value(user_id)
    return f"created_by.eq.{value},assigned_to.eq.{value}"


def _date_bound(value: date | datetime, *, end: bool) -> str:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    moment = datetime.combine(value, time.max if end else time.min, tzinfo=timezone.utc)
    return moment.isoformat()


def apply_filters(query: Any, filters: TicketFilters) -> Any:
    """Add one clause per populated filter; unset filters add nothing."""

    if filters.status:
        if isinstance(filters.status, list):
            query = query.in_("status", list(filters.status))
        else:
            query = query.eq("status", filters.status)

    if filters.priority:
        if isinstance(filters.priority, list):
            query = query.in_("priority", list(filters.priority))
        else:
            query = query.eq("priority", filters.priority)

    if filters.created_by:
        query = query.eq("created_by", filters.created_by)

    assignee = filters.assigned_to
    if assignee is not None:
        if assignee.match is AssigneeMatch.UNASSIGNED:
            query = query.is_("assigned_to", "null")
        elif assignee.match is AssigneeMatch.ASSIGNED:
            query = query.not_.is_("assigned_to", "null")
        else:
            query = query.eq("assigned_to", assignee.user_id)

    if filters.category_id:
        query = query.eq("category_id", filters.category_id)

    if filters.module:
        query = query.eq("module", filters.module)

    if filters.search:
        query = query.or_(search_expression(filters.search))

    if filters.start_date:
        query = query.gte("created_at", _date_bound(filters.start_date, end=False))
    if filters.end_date:
        query = query.lte("created_at", _date_bound(filters.end_date, end=True))

    return query


def _embedded_count(value: Any) -> int | None:
    if isinstance(value, list) and len(value) == 1 and isinstance(value[0], Mapping):
        entry = value[0]
        if set(entry) == {"count"}:
            try:
                return int(entry["count"])
            except (TypeError, ValueError):
                return 0
    return None


def normalise_comment(row: Mapping[str, Any]) -> TicketRecord:
    record = dict(row)
    record["is_internal"] = bool(record.get("is_internal"))
    content = record.get("content")
    if content is not None:
        record["content"] = str(content)
    return record


def normalise_ticket(row: Mapping[str, Any]) -> TicketRecord:
    record = dict(row)
    if "categories" in record:
        record["category"] = record.pop("categories")
    comments = record.get("comments")
    embedded_count = _embedded_count(comments)
    if embedded_count is not None:
        record.pop("comments")
        record["comment_count"] = embedded_count
    elif isinstance(comments, list):
        thread = [normalise_comment(comment) for comment in comments]
        thread.sort(key=lambda comment: str(comment.get("created_at") or ""))
        record["comments"] = thread
        record["comment_count"] = len(thread)
    for key in ("purchase_details", "error_details"):
        if key in record and record[key] is None:
            record[key] = {}
    record["reference"] = ticket_reference(record.get("id"))
    return record


async def list_tickets(
    client: Any,
    filters: TicketFilters,
    options: ListOptions,
) -> tuple[list[TicketRecord], int]:
    log_debug(
        "Listing tickets",
        filters=filters.model_dump(exclude_none=True),
        options=options.model_dump(exclude_none=True),
    )
    query = client.table("tickets").select(TICKET_LIST_SELECT, count="exact")
    query = apply_filters(query, filters)

    column, ascending = options.order()
    query = query.order(column, desc=not ascending)

    bounds = options.bounds()
    if bounds is not None:
        query = query.range(*bounds)

    response = await query.execute()
    rows = response.data or []
    log_debug("Tickets query returned", count=len(rows), total=response.count)
    return [normalise_ticket(row) for row in rows], int(response.count or 0)


async def get_ticket(client: Any, ticket_id: str) -> TicketRecord:
    response = await (
        client.table("tickets")
        .select(TICKET_DETAIL_SELECT)
        .eq("id", ticket_id)
        .single()
        .execute()
    )
    return normalise_ticket(response.data)


async def insert_ticket(client: Any, payload: Mapping[str, Any]) -> TicketRecord:
    log_info(
        "Creating ticket",
        created_by=payload.get("created_by"),
        status=payload.get("status"),
        priority=payload.get("priority"),
        module=payload.get("module"),
    )
    inserted = await client.table("tickets").insert(dict(payload)).execute()
    rows = inserted.data or []
    ticket_id = rows[0].get("id") if rows else None
    if not ticket_id:
        raise BackendError("Ticket insert returned no row")
    log_info("Ticket created successfully", ticket_id=ticket_id)
    response = await (
        client.table("tickets")
        .select(TICKET_CREATED_SELECT)
        .eq("id", ticket_id)
        .single()
        .execute()
    )
    return normalise_ticket(response.data)


async def update_ticket(
    client: Any, ticket_id: str, payload: Mapping[str, Any]
) -> TicketRecord:
    response = await (
        client.table("tickets").update(dict(payload)).eq("id", ticket_id).execute()
    )
    rows = response.data or []
    if not rows:
        raise BackendError("No ticket row was updated", code=NOT_FOUND_CODE)
    return normalise_ticket(rows[0])


async def delete_ticket(client: Any, ticket_id: str) -> None:
    await client.table("tickets").delete().eq("id", ticket_id).execute()


async def count_tickets(
    client: Any,
    *,
    equals: Mapping[str, Any] | None = None,
    involving_user: str | None = None,
) -> int:
    query = client.table("tickets").select("id", count="exact", head=True)
    for column, value in (equals or {}).items():
        query = query.eq(column, value)
    if involving_user:
        query = query.or_(involving_user_expression(involving_user))
    response = await query.execute()
    return int(response.count or 0)
