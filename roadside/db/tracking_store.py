"""Tracking store: one dispatch progress record per ticket."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import case, func, literal, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from roadside.errors import TrackingExists
from roadside.models import TrackingRecord
from roadside.models.base import utcnow
from roadside.models.utc_type import UTCDateTime
from roadside.schemas import TrackingStats

logger = logging.getLogger(__name__)


def _cutoff(window_minutes: float, now: datetime | None = None) -> datetime:
    return (now or utcnow()) - timedelta(minutes=window_minutes)


def _active_filter():
    return (
        TrackingRecord.called_mechanics < TrackingRecord.total_mechanics,
        TrackingRecord.call_finished.is_(None),
    )


def _expired_filter(cutoff: datetime):
    return (
        TrackingRecord.found_interest_time < cutoff,
        TrackingRecord.call_finished.is_(None),
    )


class TrackingStore:
    """Reads and conditional writes on the ``tracking`` table.

    Every method opens its own short-lived session so callers can run
    operations for different tickets concurrently.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(
        self, ticket_id: str, total_mechanics: int, all_mechanics: list[dict] | None = None,
    ) -> TrackingRecord:
        record = TrackingRecord(
            ticket_id=ticket_id,
            total_mechanics=total_mechanics,
            all_mechanics=all_mechanics or [],
        )
        async with self._session_factory() as db:
            db.add(record)
            try:
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                raise TrackingExists(ticket_id) from e
            await db.refresh(record)
        logger.info("New tracking record created for ticket %s (%d mechanics)", ticket_id, total_mechanics)
        return record

    async def get(self, ticket_id: str) -> TrackingRecord | None:
        async with self._session_factory() as db:
            result = await db.execute(
                select(TrackingRecord).where(TrackingRecord.ticket_id == ticket_id)
            )
            return result.scalars().first()

    async def list_active(self) -> list[TrackingRecord]:
        """Records still being dispatched: mechanics left and not finished."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(TrackingRecord)
                .where(*_active_filter())
                .order_by(TrackingRecord.created_at)
            )
            return list(result.scalars().all())

    async def list_expired(self, window_minutes: float, now: datetime | None = None) -> list[TrackingRecord]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(TrackingRecord).where(*_expired_filter(_cutoff(window_minutes, now)))
            )
            return list(result.scalars().all())

    async def finish(self, ticket_id: str, reason: str | None = None, now: datetime | None = None) -> bool:
        """Mark a record terminal. Returns False if it was already finished."""
        values = {"call_finished": now or utcnow()}
        if reason is not None:
            values["cleanup_reason"] = reason
        async with self._session_factory() as db:
            result = await db.execute(
                update(TrackingRecord)
                .where(TrackingRecord.ticket_id == ticket_id, TrackingRecord.call_finished.is_(None))
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        return result.rowcount == 1

    async def record_batch(self, ticket_id: str, batch_size: int, now: datetime | None = None) -> bool:
        """Count a dispatched batch in one conditional UPDATE.

        Increments ``called_mechanics`` by ``batch_size`` and ``batch_index``
        by one, and finishes the record when the new count reaches
        ``total_mechanics``. Only applies while ``call_finished`` is unset;
        returns False when another writer closed the record first.
        """
        now = now or utcnow()
        new_count = TrackingRecord.called_mechanics + batch_size
        async with self._session_factory() as db:
            result = await db.execute(
                update(TrackingRecord)
                .where(TrackingRecord.ticket_id == ticket_id, TrackingRecord.call_finished.is_(None))
                .values(
                    called_mechanics=new_count,
                    batch_index=TrackingRecord.batch_index + 1,
                    last_processed_at=now,
                    call_finished=case(
                        (new_count >= TrackingRecord.total_mechanics, literal(now, UTCDateTime())),
                        else_=None,
                    ),
                )
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        return result.rowcount == 1

    async def mark_interest(self, ticket_id: str, now: datetime | None = None) -> bool:
        """Flag that a mechanic showed interest. The first interest time is kept."""
        now = now or utcnow()
        async with self._session_factory() as db:
            result = await db.execute(
                update(TrackingRecord)
                .where(TrackingRecord.ticket_id == ticket_id, TrackingRecord.call_finished.is_(None))
                .values(
                    found_interest=True,
                    found_interest_time=func.coalesce(
                        TrackingRecord.found_interest_time, literal(now, UTCDateTime())
                    ),
                )
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        return result.rowcount == 1

    async def finish_expired(self, window_minutes: float, reason: str, now: datetime | None = None) -> int:
        now = now or utcnow()
        async with self._session_factory() as db:
            result = await db.execute(
                update(TrackingRecord)
                .where(*_expired_filter(_cutoff(window_minutes, now)))
                .values(call_finished=now, cleanup_reason=reason)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        return result.rowcount

    async def stats(self, window_minutes: float, now: datetime | None = None) -> TrackingStats:
        async with self._session_factory() as db:
            async def _count(*where) -> int:
                stmt = select(func.count()).select_from(TrackingRecord)
                if where:
                    stmt = stmt.where(*where)
                return (await db.execute(stmt)).scalar_one()

            total = await _count()
            active = await _count(*_active_filter())
            completed = await _count(TrackingRecord.call_finished.is_not(None))
            expired = await _count(*_expired_filter(_cutoff(window_minutes, now)))

        return TrackingStats(
            total=total,
            active=active,
            completed=completed,
            expired=expired,
            pending_expiration=expired,
        )
