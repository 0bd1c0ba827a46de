"""Loads the ticket and organization data a dispatch call script needs."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from roadside.db import crud
from roadside.errors import TicketContextError


@dataclass
class TicketContext:
    ticket_id: str
    organization_id: str
    company_name: str
    organization_type: str = "fleet"
    vehicle_info: str = ""
    license_plate: str = ""
    owner_number: str = ""
    breakdown_address: str = ""
    primary_reason: str = "mechanical breakdown"
    secondary_reason: str = ""
    tow_destination: str = ""
    assistant_id: str = ""
    phone_number: str = ""
    dispatch_prompt: str = ""
    first_message: str = ""

    @property
    def ticket_type(self) -> str:
        return "tow" if self.tow_destination else "repair"


def _clean(value: str | None) -> str:
    return " ".join((value or "").split())


class TicketContextLoader:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], default_company_name: str):
        self._session_factory = session_factory
        self._default_company_name = default_company_name

    async def load(self, ticket_id: str) -> TicketContext:
        async with self._session_factory() as db:
            ticket = await crud.get_ticket(db, ticket_id)
            if not ticket:
                raise TicketContextError(f"Ticket {ticket_id} not found")
            config = await crud.get_call_config(db, ticket.organization_id)

        breakdown_address = _clean(ticket.breakdown_address)
        if not breakdown_address:
            raise TicketContextError(f"No breakdown address for ticket {ticket_id}")

        vehicle = " ".join(
            p for p in (ticket.vehicle_color, ticket.vehicle_year, ticket.vehicle_make, ticket.vehicle_model) if p
        )
        return TicketContext(
            ticket_id=ticket_id,
            organization_id=ticket.organization_id,
            company_name=(config.company_name if config else "") or self._default_company_name,
            organization_type=(config.organization_type if config else "") or "fleet",
            vehicle_info=vehicle,
            license_plate=ticket.license_plate,
            owner_number=ticket.owner_phone,
            breakdown_address=breakdown_address,
            primary_reason=_clean(ticket.breakdown_reason) or "mechanical breakdown",
            secondary_reason=_clean(ticket.breakdown_reason_text),
            tow_destination=_clean(ticket.tow_destination),
            assistant_id=config.assistant_id if config else "",
            phone_number=config.phone_number if config else "",
            dispatch_prompt=config.dispatch_prompt if config else "",
            first_message=config.first_message if config else "",
        )
