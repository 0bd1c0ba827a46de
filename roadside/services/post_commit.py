"""Side effects that run after a batch has been counted."""

from __future__ import annotations

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from roadside.db import crud
from roadside.models.base import utcnow
from roadside.schemas import CallOutcome
from roadside.services.ticket_context import TicketContext


class PostCommitHook(Protocol):
    name: str

    async def __call__(self, context: TicketContext, outcomes: list[CallOutcome]) -> None:
        ...


class RecordCallActivity:
    """Log every placed call as outbound call activity for the organization."""

    name = "record_call_activity"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def __call__(self, context: TicketContext, outcomes: list[CallOutcome]) -> None:
        now = utcnow()
        rows = [
            {
                "call_id": o.call_id or "",
                "organization_id": context.organization_id,
                "ticket_id": context.ticket_id,
                "call_type": "outbound",
                "number": o.number,
                "recorded_time": now,
            }
            for o in outcomes if o.success
        ]
        if not rows:
            return
        async with self._session_factory() as db:
            await crud.create_call_activities(db, rows)
