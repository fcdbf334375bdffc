from __future__ import annotations

from helpdesk.services.tickets import TicketService, ticket_service


def get_ticket_service() -> TicketService:
    return ticket_service
