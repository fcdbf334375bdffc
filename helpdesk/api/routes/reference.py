from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from helpdesk.api.dependencies.auth import require_authenticated
from helpdesk.api.dependencies.services import get_ticket_service
from helpdesk.schemas.tickets import ReferenceDataResponse, ReferenceListResponse
from helpdesk.services.auth import AuthSessionManager
from helpdesk.services.tickets import TicketService

router = APIRouter(prefix="/api/reference", tags=["Reference data"])

# Failed refreshes still answer 200 with the last cached collection and the
# error, so forms keep their options.


@router.get("/", response_model=ReferenceDataResponse)
async def get_reference_data(
    refresh: bool = Query(default=False),
    _: AuthSessionManager = Depends(require_authenticated),
    service: TicketService = Depends(get_ticket_service),
) -> ReferenceDataResponse:
    result = await service.load_reference_data(force_refresh=refresh)
    data = result.data or {}
    return ReferenceDataResponse(
        categories=data.get("categories", []),
        users=data.get("users", []),
        error=result.error,
    )


@router.get("/categories", response_model=ReferenceListResponse)
async def get_categories(
    refresh: bool = Query(default=False),
    _: AuthSessionManager = Depends(require_authenticated),
    service: TicketService = Depends(get_ticket_service),
) -> ReferenceListResponse:
    result = await service.get_categories(force_refresh=refresh)
    return ReferenceListResponse(items=result.data or [], error=result.error)


@router.get("/users", response_model=ReferenceListResponse)
async def get_users(
    refresh: bool = Query(default=False),
    _: AuthSessionManager = Depends(require_authenticated),
    service: TicketService = Depends(get_ticket_service),
) -> ReferenceListResponse:
    result = await service.get_users(force_refresh=refresh)
    return ReferenceListResponse(items=result.data or [], error=result.error)
