"""Schedule driver: runs the batch processor and cleanup sweeper on fixed intervals."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable

import httpx

from roadside.config import SchedulerConfig
from roadside.models.base import utcnow

logger = logging.getLogger(__name__)


class PeriodicJob:
    """A job fired every ``interval_seconds`` with a single-flight guard.

    Ticks are fixed-rate: a tick that fires while the previous run is still
    going is skipped, not queued.
    """

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval_seconds: float,
        alert_after_failures: int = 3,
    ):
        self.name = name
        self._func = func
        self.interval_seconds = interval_seconds
        self.alert_after_failures = alert_after_failures
        self.running = False
        self.total_runs = 0
        self.successful_runs = 0
        self.failed_runs = 0
        self.skipped_runs = 0
        self.consecutive_failures = 0
        self.last_run_at: datetime | None = None
        self.last_error: str | None = None
        self._inflight: set[asyncio.Task] = set()

    async def tick(self) -> bool:
        """Run the job once unless it is already running. Returns whether it ran."""
        if self.running:
            self.skipped_runs += 1
            logger.warning("%s already running, skipping this execution", self.name)
            return False

        self.running = True
        self.total_runs += 1
        self.last_run_at = utcnow()
        started = time.monotonic()
        logger.info("Starting %s (run #%d)", self.name, self.total_runs)
        try:
            result = await self._func()
        except Exception as e:
            self.failed_runs += 1
            self.consecutive_failures += 1
            self.last_error = str(e) or type(e).__name__
            logger.error("%s failed after %dms: %s", self.name, (time.monotonic() - started) * 1000, self.last_error)
            if self.consecutive_failures >= self.alert_after_failures:
                logger.error(
                    "ALERT: %s has failed %d times in a row", self.name, self.consecutive_failures,
                )
        else:
            self.successful_runs += 1
            self.consecutive_failures = 0
            self.last_error = None
            logger.info("%s completed in %dms: %s", self.name, (time.monotonic() - started) * 1000, result)
        finally:
            self.running = False
        return True

    async def run_forever(self):
        while True:
            await asyncio.sleep(self.interval_seconds)
            task = asyncio.create_task(self.tick())
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def cancel_inflight(self):
        for task in list(self._inflight):
            task.cancel()
        await asyncio.gather(*self._inflight, return_exceptions=True)

    def status(self) -> dict:
        success_rate = (self.successful_runs / self.total_runs * 100) if self.total_runs else 0.0
        return {
            "interval_seconds": self.interval_seconds,
            "running": self.running,
            "total_runs": self.total_runs,
            "successful_runs": self.successful_runs,
            "failed_runs": self.failed_runs,
            "skipped_runs": self.skipped_runs,
            "consecutive_failures": self.consecutive_failures,
            "success_rate": round(success_rate, 1),
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
        }


class ScheduleDriver:
    def __init__(self, jobs: list[PeriodicJob], status_interval_seconds: float = 600.0):
        self.jobs = jobs
        self.status_interval_seconds = status_interval_seconds
        self.started_at: datetime | None = None
        self._tasks: list[asyncio.Task] = []

    def start(self):
        self.started_at = utcnow()
        for job in self.jobs:
            logger.info("Scheduling %s every %ss", job.name, job.interval_seconds)
            self._tasks.append(asyncio.create_task(job.run_forever()))
        self._tasks.append(asyncio.create_task(self._log_status_forever()))

    async def stop(self):
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        for job in self.jobs:
            await job.cancel_inflight()
        self.log_status()

    async def _log_status_forever(self):
        while True:
            await asyncio.sleep(self.status_interval_seconds)
            self.log_status()

    def status(self) -> dict:
        return {
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "jobs": {job.name: job.status() for job in self.jobs},
        }

    def log_status(self):
        for job in self.jobs:
            s = job.status()
            logger.info(
                "%s: runs=%d ok=%d failed=%d skipped=%d success_rate=%.1f%% last_run=%s",
                job.name, s["total_runs"], s["successful_runs"], s["failed_runs"],
                s["skipped_runs"], s["success_rate"], s["last_run_at"] or "never",
            )


# ── Job factories ─────────────────────────────────────────

def in_process_jobs(processor, sweeper, config: SchedulerConfig) -> list[PeriodicJob]:
    """Jobs that call the services directly, for running inside the API process."""

    async def _batches():
        result = await processor.run_batch_cycle()
        return {"processed": result.processed, "calls_made": result.calls_made, "errors": result.errors}

    async def _cleanup():
        return (await sweeper.sweep_expired()).model_dump()

    return [
        PeriodicJob("process-batches", _batches, config.batch_interval_seconds, config.alert_after_failures),
        PeriodicJob("cleanup", _cleanup, config.cleanup_interval_seconds, config.alert_after_failures),
    ]


def remote_jobs(client: httpx.AsyncClient, config: SchedulerConfig) -> list[PeriodicJob]:
    """Jobs that trigger the cron endpoints of a running API over HTTP."""

    def _post(path: str):
        async def _call():
            resp = await client.post(path)
            resp.raise_for_status()
            return resp.json()
        return _call

    return [
        PeriodicJob(
            "process-batches", _post("/cron/process-batches"),
            config.batch_interval_seconds, config.alert_after_failures,
        ),
        PeriodicJob(
            "cleanup", _post("/cron/cleanup"),
            config.cleanup_interval_seconds, config.alert_after_failures,
        ),
    ]
