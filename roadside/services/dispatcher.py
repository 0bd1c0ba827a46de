"""Dispatch batch processor: calls the next batch of mechanics for each open ticket."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Callable

from roadside.config import DispatchConfig
from roadside.db.mechanic_queue import MechanicQueueStore
from roadside.db.tracking_store import TrackingStore
from roadside.errors import TicketContextError, TrackingFinished, TrackingNotFound
from roadside.models import TrackingRecord
from roadside.models.base import utcnow
from roadside.schemas import (
    BatchCycleResult, CallOutcome, Mechanic, PostCommitStep, StepError, TicketBatchResult,
)
from roadside.services.call_gateway import CallGateway
from roadside.services.post_commit import PostCommitHook
from roadside.services.ticket_context import TicketContext, TicketContextLoader

logger = logging.getLogger(__name__)


class DispatchBatchProcessor:
    """Runs dispatch cycles over the tracking store.

    Collaborators are passed in so tests can swap the gateway and stores.
    Safe to call repeatedly: every cycle re-reads persisted state, and the
    counter update is conditional on the record still being open.
    """

    def __init__(
        self,
        tracking: TrackingStore,
        queue: MechanicQueueStore,
        gateway: CallGateway,
        contexts: TicketContextLoader,
        config: DispatchConfig,
        post_commit: list[PostCommitHook] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._tracking = tracking
        self._queue = queue
        self._gateway = gateway
        self._contexts = contexts
        self._config = config
        self._post_commit = post_commit or []
        self._clock = clock

    # ── cycle ─────────────────────────────────────────────

    async def _gateway_busy(self) -> bool:
        try:
            return await self._gateway.has_active_calls()
        except Exception as e:
            logger.warning("Could not check call gateway status, continuing: %s", e)
            return False

    async def run_batch_cycle(self) -> BatchCycleResult:
        """Process every active tracking record once.

        A failure on one ticket is recorded and never stops the others.
        Errors reading the active set propagate to the caller.
        """
        started = time.monotonic()

        if self._config.pause_when_busy and await self._gateway_busy():
            logger.info("Call gateway has ongoing calls, pausing batch processing")
            return BatchCycleResult(status="paused", reason="gateway_busy")

        records = await self._tracking.list_active()
        logger.info("Found %d tickets to process", len(records))

        sem = asyncio.Semaphore(max(1, self._config.max_concurrent_tickets))

        async def _guarded(record: TrackingRecord) -> TicketBatchResult:
            async with sem:
                return await self.process_one(record)

        outcomes = await asyncio.gather(*(_guarded(r) for r in records), return_exceptions=True)

        result = BatchCycleResult(total_found=len(records))
        for record, outcome in zip(records, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error("Error processing ticket %s: %s", record.ticket_id, outcome)
                result.error_details.append(
                    StepError(step="process_ticket", ticket_id=record.ticket_id, error=str(outcome))
                )
                continue

            result.results.append(outcome)
            if outcome.status == "processed":
                result.processed += 1
                result.calls_made += outcome.succeeded
            elif outcome.status == "skipped":
                result.skipped += 1
            elif outcome.status == "completed":
                result.completed += 1
            elif outcome.status == "error":
                result.error_details.append(
                    StepError(step="load_ticket", ticket_id=record.ticket_id, error=outcome.reason or "")
                )

        result.errors = len(result.error_details)
        result.processing_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Batch processing completed in %dms: processed=%d skipped=%d completed=%d errors=%d",
            result.processing_ms, result.processed, result.skipped, result.completed, result.errors,
        )
        return result

    async def process_ticket(self, ticket_id: str) -> TicketBatchResult:
        """Process one ticket on demand, bypassing the active-set scan."""
        record = await self._tracking.get(ticket_id)
        if not record:
            raise TrackingNotFound(ticket_id)
        if record.call_finished is not None:
            raise TrackingFinished(ticket_id, record.call_finished)
        return await self.process_one(record)

    # ── single ticket ─────────────────────────────────────

    async def _settle_queue(
        self, ticket_id: str, succeeded: list[str], finished: bool,
    ) -> PostCommitStep:
        """Drop answered mechanics from the queue, or the whole queue once finished.

        Runs after the batch is counted; a failure here is reported and never
        undoes the count.
        """
        try:
            if finished:
                await self._queue.purge([ticket_id])
            else:
                await self._queue.dequeue(ticket_id, succeeded)
        except Exception as e:
            logger.exception("Queue update failed for ticket %s", ticket_id)
            return PostCommitStep(step="update_queue", ok=False, error=str(e))
        return PostCommitStep(step="update_queue", ok=True)

    def _interest_expired(self, record: TrackingRecord, now: datetime) -> bool:
        if record.found_interest_time is None:
            return False
        window = timedelta(minutes=self._config.interest_window_minutes)
        return now - record.found_interest_time > window

    async def _next_batch(self, record: TrackingRecord, limit: int) -> list[Mechanic]:
        if limit <= 0:
            return []
        if self._config.mechanic_source == "snapshot":
            start = record.batch_index * self._config.batch_size
            window = (record.all_mechanics or [])[start:start + self._config.batch_size]
            return [Mechanic.model_validate(m) for m in window[:limit]]
        return await self._queue.peek_next(record.ticket_id, limit)

    async def _place_calls(self, batch: list[Mechanic], context: TicketContext) -> list[CallOutcome]:
        results = await asyncio.gather(
            *(self._gateway.place_call(m, context) for m in batch),
            return_exceptions=True,
        )
        outcomes = []
        for mechanic, r in zip(batch, results):
            if isinstance(r, BaseException):
                if not isinstance(r, Exception):
                    raise r
                # Other calls in the batch may already be ringing, so a config
                # error is counted as a failed call like any other
                logger.error("Error calling mechanic %s: %s", mechanic.name, r)
                r = CallOutcome(
                    success=False,
                    mechanic=mechanic.name,
                    number=mechanic.international_phone_number,
                    error=str(r),
                )
            outcomes.append(r)
        return outcomes

    async def _run_post_commit(self, context: TicketContext, outcomes: list[CallOutcome]) -> list[PostCommitStep]:
        steps = []
        for hook in self._post_commit:
            try:
                await hook(context, outcomes)
                steps.append(PostCommitStep(step=hook.name, ok=True))
            except Exception as e:
                logger.exception("Post-commit step %s failed for ticket %s", hook.name, context.ticket_id)
                steps.append(PostCommitStep(step=hook.name, ok=False, error=str(e)))
        return steps

    async def process_one(self, record: TrackingRecord) -> TicketBatchResult:
        """Call the next batch of mechanics for one ticket and count it."""
        ticket_id = record.ticket_id
        now = self._clock()
        result = TicketBatchResult(
            ticket_id=ticket_id,
            status="skipped",
            batch_index=record.batch_index,
            called_mechanics=record.called_mechanics,
            call_finished=record.call_finished,
        )

        if record.call_finished is not None:
            result.reason = "already_finished"
            return result

        if self._interest_expired(record, now):
            logger.info("Skipping ticket %s: interest window expired", ticket_id)
            await self._tracking.finish(ticket_id, now=now)
            result.reason = "window_expired"
            result.call_finished = now
            result.post_commit = [await self._settle_queue(ticket_id, [], finished=True)]
            return result

        logger.info("Processing ticket %s, batch %d", ticket_id, record.batch_index)
        limit = min(self._config.batch_size, record.total_mechanics - record.called_mechanics)
        batch = await self._next_batch(record, limit)

        if not batch:
            logger.info("No more mechanics to call for ticket %s", ticket_id)
            await self._tracking.finish(ticket_id, now=now)
            result.status = "completed"
            result.reason = "no_more_mechanics"
            result.call_finished = now
            result.post_commit = [await self._settle_queue(ticket_id, [], finished=True)]
            return result

        try:
            context = await self._contexts.load(ticket_id)
        except TicketContextError as e:
            logger.error("Cannot dispatch ticket %s: %s", ticket_id, e)
            result.status = "error"
            result.reason = str(e)
            return result

        # Claim the batch before dialling: claimed entries sort behind untried
        # ones, so a lost dequeue never puts them back at the front
        numbers = [m.international_phone_number for m in batch]
        await self._queue.mark_attempted(ticket_id, numbers)

        logger.info("Calling %d mechanics for ticket %s", len(batch), ticket_id)
        outcomes = await self._place_calls(batch, context)
        succeeded = [o.number for o in outcomes if o.success]

        applied = await self._tracking.record_batch(ticket_id, len(batch), now=self._clock())
        if not applied:
            logger.warning("Ticket %s was closed while its batch was in flight", ticket_id)

        updated = await self._tracking.get(ticket_id)
        finished = updated is not None and updated.call_finished is not None
        queue_step = await self._settle_queue(ticket_id, succeeded, finished)

        result.status = "processed"
        result.attempted = len(batch)
        result.succeeded = len(succeeded)
        result.failed = len(batch) - len(succeeded)
        result.calls = outcomes
        result.stale = not applied
        if updated:
            result.batch_index = updated.batch_index
            result.called_mechanics = updated.called_mechanics
            result.call_finished = updated.call_finished
        result.post_commit = [queue_step] + await self._run_post_commit(context, outcomes)

        logger.info(
            "Ticket %s: %d successful calls, %d failed calls (%d/%d called)",
            ticket_id, result.succeeded, result.failed, result.called_mechanics, record.total_mechanics,
        )
        return result
