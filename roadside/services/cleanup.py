"""Cleanup sweeper: closes tickets whose interest window has lapsed."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from roadside.db.mechanic_queue import MechanicQueueStore
from roadside.db.tracking_store import TrackingStore
from roadside.models.base import utcnow
from roadside.schemas import CleanupResult

logger = logging.getLogger(__name__)

EXPIRED_REASON = "Expired - window exceeded"


class CleanupSweeper:
    def __init__(
        self,
        tracking: TrackingStore,
        queue: MechanicQueueStore | None = None,
        window_minutes: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._tracking = tracking
        self._queue = queue
        self._window_minutes = window_minutes
        self._clock = clock

    async def sweep_expired(self, window_minutes: float | None = None) -> CleanupResult:
        """Finish every open record whose interest time is older than the window.

        ``found`` can exceed ``cleaned`` when another writer closes some
        records between the scan and the update. Running it twice in a
        row cleans nothing the second time. Leftover queue entries of the
        expired tickets are purged; a purge failure is logged and leaves
        ``purged`` at zero.
        """
        window = self._window_minutes if window_minutes is None else window_minutes
        now = self._clock()

        expired = await self._tracking.list_expired(window, now=now)
        logger.info("Found %d expired tracking records", len(expired))
        if not expired:
            return CleanupResult(found=0, cleaned=0)

        cleaned = await self._tracking.finish_expired(window, EXPIRED_REASON, now=now)
        logger.info("Marked %d expired tracking records as finished", cleaned)

        purged = 0
        if self._queue is not None:
            try:
                purged = await self._queue.purge([r.ticket_id for r in expired])
            except Exception:
                logger.exception("Failed to purge queued mechanics of expired tickets")
        return CleanupResult(found=len(expired), cleaned=cleaned, purged=purged)
