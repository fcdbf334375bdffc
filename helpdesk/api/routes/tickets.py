from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, status

from helpdesk.api.dependencies.auth import require_agent, require_authenticated
from helpdesk.api.dependencies.services import get_ticket_service
from helpdesk.api.errors import raise_for_result
from helpdesk.schemas.tickets import (
    CommentCreate,
    TicketCreate,
    TicketListResponse,
    TicketUpdate,
)
from helpdesk.services.auth import AuthSessionManager
from helpdesk.services.tickets import TicketService

router = APIRouter(prefix="/api/tickets", tags=["Tickets"])


@router.get("/", response_model=TicketListResponse)
async def list_tickets(
    status_filter: str | None = Query(default=None, alias="status"),
    priority: str | None = Query(default=None),
    created_by: str | None = Query(default=None),
    assigned_to: str | None = Query(default=None),
    category_id: str | None = Query(default=None),
    module: str | None = Query(default=None),
    search: str | None = Query(default=None),
    start_date: str | None = Query(default=None),
    end_date: str | None = Query(default=None),
    sort_by: str | None = Query(default=None),
    sort_ascending: bool | None = Query(default=None),
    page: int | None = Query(default=None, ge=1),
    page_size: int | None = Query(default=None, ge=1, le=500),
    manager: AuthSessionManager = Depends(require_authenticated),
    service: TicketService = Depends(get_ticket_service),
) -> TicketListResponse:
    filters = {
        "status": status_filter,
        "priority": priority,
        "created_by": created_by,
        "assigned_to": assigned_to,
        "category_id": category_id,
        "module": module,
        "search": search,
        "start_date": start_date,
        "end_date": end_date,
    }
    options = {
        "sort_by": sort_by,
        "sort_ascending": sort_ascending,
        "page": page,
        "page_size": page_size,
    }
    result = await service.list_tickets(filters, options)
    raise_for_result(result)
    return TicketListResponse(
        items=result.data or [],
        total=result.count or 0,
        page=page,
        page_size=page_size,
    )


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreate,
    manager: AuthSessionManager = Depends(require_authenticated),
    service: TicketService = Depends(get_ticket_service),
) -> dict[str, Any]:
    fields = payload.model_dump(exclude_none=True)
    fields["created_by"] = manager.user_id
    result = await service.create_ticket(fields)
    raise_for_result(result)
    return result.data


def _visible_comments(comments: list[dict[str, Any]], manager: AuthSessionManager) -> list[dict[str, Any]]:
    if manager.is_agent:
        return comments
    return [comment for comment in comments if not comment.get("is_internal")]


@router.get("/{ticket_id}")
async def get_ticket(
    ticket_id: str,
    manager: AuthSessionManager = Depends(require_authenticated),
    service: TicketService = Depends(get_ticket_service),
) -> dict[str, Any]:
    result = await service.get_ticket(ticket_id)
    raise_for_result(result)
    ticket = dict(result.data or {})
    if isinstance(ticket.get("comments"), list):
        ticket["comments"] = _visible_comments(ticket["comments"], manager)
        ticket["comment_count"] = len(ticket["comments"])
    return ticket


@router.put("/{ticket_id}")
async def update_ticket(
    ticket_id: str,
    payload: TicketUpdate,
    manager: AuthSessionManager = Depends(require_authenticated),
    service: TicketService = Depends(get_ticket_service),
) -> dict[str, Any]:
    result = await service.update_ticket(ticket_id, payload, manager.user_id)
    raise_for_result(result)
    return result.data


@router.delete("/{ticket_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_ticket(
    ticket_id: str,
    manager: AuthSessionManager = Depends(require_agent),
    service: TicketService = Depends(get_ticket_service),
) -> None:
    result = await service.delete_ticket(ticket_id, manager.user_id)
    raise_for_result(result)


@router.get("/{ticket_id}/comments")
async def list_comments(
    ticket_id: str,
    manager: AuthSessionManager = Depends(require_authenticated),
    service: TicketService = Depends(get_ticket_service),
) -> list[dict[str, Any]]:
    result = await service.get_comments(ticket_id)
    raise_for_result(result)
    return _visible_comments(result.data or [], manager)


@router.post("/{ticket_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    ticket_id: str,
    payload: CommentCreate,
    manager: AuthSessionManager = Depends(require_authenticated),
    service: TicketService = Depends(get_ticket_service),
) -> dict[str, Any]:
    result = await service.add_comment(
        ticket_id,
        manager.user_id,
        payload.content,
        is_internal=payload.is_internal and manager.is_agent,
    )
    raise_for_result(result)
    return result.data


@router.get("/{ticket_id}/history")
async def get_ticket_history(
    ticket_id: str,
    manager: AuthSessionManager = Depends(require_authenticated),
    service: TicketService = Depends(get_ticket_service),
) -> list[dict[str, Any]]:
    result = await service.get_ticket_history(ticket_id)
    raise_for_result(result)
    return result.data or []
