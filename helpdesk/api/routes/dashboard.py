from __future__ import annotations

from fastapi import APIRouter, Depends

from helpdesk.api.dependencies.auth import require_agent, require_authenticated
from helpdesk.api.dependencies.services import get_ticket_service
from helpdesk.api.errors import raise_for_result
from helpdesk.schemas.tickets import SystemTicketStats, UserTicketStats
from helpdesk.services.auth import AuthSessionManager
from helpdesk.services.tickets import TicketService

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


@router.get("/stats", response_model=UserTicketStats)
async def get_user_stats(
    manager: AuthSessionManager = Depends(require_authenticated),
    service: TicketService = Depends(get_ticket_service),
) -> UserTicketStats:
    result = await service.get_ticket_stats(manager.user_id)
    raise_for_result(result)
    return UserTicketStats(**(result.data or {}))


@router.get("/system", response_model=SystemTicketStats)
async def get_system_stats(
    _: AuthSessionManager = Depends(require_agent),
    service: TicketService = Depends(get_ticket_service),
) -> SystemTicketStats:
    result = await service.get_system_stats()
    raise_for_result(result)
    return SystemTicketStats(**(result.data or {}))
