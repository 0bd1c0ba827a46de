"""Mechanic queue store: candidates still to be called, per ticket."""

from __future__ import annotations

import logging

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from roadside.models import MechanicQueueEntry
from roadside.schemas import Mechanic

logger = logging.getLogger(__name__)

_COLUMNS = (
    "international_phone_number", "formatted_address", "display_name", "language_code",
    "source", "has_onboarded", "first_name", "labour", "distance",
)


def _to_entry(ticket_id: str, mechanic: Mechanic) -> MechanicQueueEntry:
    return MechanicQueueEntry(
        ticket_id=ticket_id,
        extra=mechanic.extra_fields(),
        **{col: getattr(mechanic, col) for col in _COLUMNS},
    )


def _to_mechanic(entry: MechanicQueueEntry) -> Mechanic:
    data = dict(entry.extra or {})
    data.update({col: getattr(entry, col) for col in _COLUMNS})
    return Mechanic.model_validate(data)


class MechanicQueueStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def enqueue_batch(self, ticket_id: str, mechanics: list[Mechanic]) -> dict:
        """Insert mechanics for a ticket, skipping ones already queued.

        A duplicate (ticket, phone) pair never aborts the rest of the batch.
        """
        async with self._session_factory() as db:
            result = await db.execute(
                select(MechanicQueueEntry.international_phone_number)
                .where(MechanicQueueEntry.ticket_id == ticket_id)
            )
            seen = set(result.scalars().all())

        fresh = []
        for m in mechanics:
            if m.international_phone_number in seen:
                continue
            seen.add(m.international_phone_number)
            fresh.append(m)

        inserted = 0
        async with self._session_factory() as db:
            db.add_all([_to_entry(ticket_id, m) for m in fresh])
            try:
                await db.commit()
                inserted = len(fresh)
            except IntegrityError:
                await db.rollback()
                inserted = None

        if inserted is None:
            # A concurrent writer queued some of these; fall back to row by row
            inserted = 0
            for m in fresh:
                async with self._session_factory() as db:
                    db.add(_to_entry(ticket_id, m))
                    try:
                        await db.commit()
                        inserted += 1
                    except IntegrityError:
                        await db.rollback()

        duplicates = len(mechanics) - inserted
        if duplicates:
            logger.info("Skipped %d duplicate mechanics for ticket %s", duplicates, ticket_id)
        return {"inserted": inserted, "duplicates": duplicates}

    async def peek_next(self, ticket_id: str, limit: int) -> list[Mechanic]:
        """Next mechanics to call, least attempted first, without removing them."""
        if limit <= 0:
            return []
        async with self._session_factory() as db:
            result = await db.execute(
                select(MechanicQueueEntry)
                .where(MechanicQueueEntry.ticket_id == ticket_id)
                .order_by(
                    MechanicQueueEntry.attempts,
                    MechanicQueueEntry.created_at,
                    MechanicQueueEntry.id,
                )
                .limit(limit)
            )
            return [_to_mechanic(e) for e in result.scalars().all()]

    async def dequeue(self, ticket_id: str, phone_numbers: list[str]) -> int:
        if not phone_numbers:
            return 0
        async with self._session_factory() as db:
            result = await db.execute(
                delete(MechanicQueueEntry)
                .where(
                    MechanicQueueEntry.ticket_id == ticket_id,
                    MechanicQueueEntry.international_phone_number.in_(phone_numbers),
                )
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        return result.rowcount

    async def mark_attempted(self, ticket_id: str, phone_numbers: list[str]) -> int:
        if not phone_numbers:
            return 0
        async with self._session_factory() as db:
            result = await db.execute(
                update(MechanicQueueEntry)
                .where(
                    MechanicQueueEntry.ticket_id == ticket_id,
                    MechanicQueueEntry.international_phone_number.in_(phone_numbers),
                )
                .values(attempts=MechanicQueueEntry.attempts + 1)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        return result.rowcount

    async def purge(self, ticket_ids: list[str]) -> int:
        """Delete every queued entry for the given tickets."""
        if not ticket_ids:
            return 0
        async with self._session_factory() as db:
            result = await db.execute(
                delete(MechanicQueueEntry)
                .where(MechanicQueueEntry.ticket_id.in_(ticket_ids))
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        if result.rowcount:
            logger.info("Purged %d queued mechanics for %d finished tickets", result.rowcount, len(ticket_ids))
        return result.rowcount

    async def count(self, ticket_id: str) -> int:
        async with self._session_factory() as db:
            result = await db.execute(
                select(func.count())
                .select_from(MechanicQueueEntry)
                .where(MechanicQueueEntry.ticket_id == ticket_id)
            )
            return result.scalar_one()
