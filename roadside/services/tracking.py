"""Starting and updating ticket dispatch tracking."""

from __future__ import annotations

import logging

from roadside.db.mechanic_queue import MechanicQueueStore
from roadside.db.tracking_store import TrackingStore
from roadside.errors import TrackingFinished, TrackingNotFound
from roadside.models import TrackingRecord
from roadside.schemas import Mechanic

logger = logging.getLogger(__name__)


async def start_dispatch(
    tracking: TrackingStore,
    queue: MechanicQueueStore,
    ticket_id: str,
    mechanics: list[Mechanic],
    snapshot_limit: int = 10,
) -> TrackingRecord:
    """Create the tracking record and queue every mechanic for a ticket.

    Called once the mechanic search for a ticket has finished. Raises
    TrackingExists if the ticket is already being dispatched.
    """
    unique: dict[str, Mechanic] = {}
    for m in mechanics:
        unique.setdefault(m.international_phone_number, m)
    candidates = list(unique.values())

    snapshot = [m.model_dump() for m in candidates[:snapshot_limit]]
    record = await tracking.create(ticket_id, len(candidates), snapshot)
    queued = await queue.enqueue_batch(ticket_id, candidates)
    logger.info("Queued %d mechanics for ticket %s", queued["inserted"], ticket_id)
    return record


async def mark_interest(tracking: TrackingStore, ticket_id: str) -> TrackingRecord:
    """Record that a mechanic has expressed interest in the ticket."""
    record = await tracking.get(ticket_id)
    if not record:
        raise TrackingNotFound(ticket_id)
    if record.call_finished is not None:
        raise TrackingFinished(ticket_id, record.call_finished)
    if not await tracking.mark_interest(ticket_id):
        raise TrackingFinished(ticket_id)
    return await tracking.get(ticket_id)
