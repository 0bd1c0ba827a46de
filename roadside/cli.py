"""CLI for Roadside Dispatch: database setup, one-off cycles and the cron worker."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys


async def cmd_init_db(args):
    """Create the dispatch tables."""
    from roadside.db.engine import create_tables, engine

    await create_tables()
    await engine.dispose()
    print("Database tables created")


async def _with_services(fn):
    from roadside.config import get_settings
    from roadside.db.engine import async_session_factory, engine
    from roadside.services.bootstrap import build_services

    services = build_services(get_settings(), async_session_factory)
    try:
        return await fn(services)
    finally:
        await services.aclose()
        await engine.dispose()


async def cmd_run_cycle(args):
    """Run one batch cycle in this process."""
    async def _run(services):
        if args.ticket:
            return await services.processor.process_ticket(args.ticket)
        return await services.processor.run_batch_cycle()

    result = await _with_services(_run)
    print(json.dumps(result.model_dump(mode="json"), indent=2))


async def cmd_cleanup(args):
    """Finish tracking records whose interest window has lapsed."""
    result = await _with_services(lambda s: s.sweeper.sweep_expired(args.window))
    print(f"Found {result.found} expired records, cleaned {result.cleaned}, purged {result.purged} queued mechanics")


async def cmd_stats(args):
    from roadside.config import get_settings
    from roadside.db.engine import async_session_factory, engine
    from roadside.db.tracking_store import TrackingStore

    settings = get_settings()
    stats = await TrackingStore(async_session_factory).stats(settings.dispatch.interest_window_minutes)
    await engine.dispose()
    print(json.dumps(stats.model_dump(), indent=2))


async def cmd_worker(args):
    """Drive the cron endpoints of a running API on a fixed schedule."""
    import httpx

    from roadside.config import get_settings
    from roadside.services.scheduler import ScheduleDriver, remote_jobs

    settings = get_settings()
    sched = settings.scheduler
    base_url = args.base_url or sched.base_url
    headers = {"User-Agent": "RoadsideCronWorker/1.0"}
    if settings.cron_api_key:
        headers["X-Cron-Key"] = settings.cron_api_key

    async with httpx.AsyncClient(
        base_url=base_url, headers=headers, timeout=sched.request_timeout_seconds,
    ) as client:
        driver = ScheduleDriver(remote_jobs(client, sched), status_interval_seconds=sched.status_interval_seconds)
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        logging.getLogger(__name__).info("Cron worker targeting %s", base_url)
        driver.start()
        await stop.wait()
        await driver.stop()


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    parser = argparse.ArgumentParser(description="Roadside Dispatch CLI")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init-db", help="Create database tables")

    rc = subparsers.add_parser("run-cycle", help="Run one dispatch batch cycle")
    rc.add_argument("--ticket", default="", help="Only process this ticket")

    cl = subparsers.add_parser("cleanup", help="Finish expired tracking records")
    cl.add_argument("--window", type=float, default=None, help="Interest window in minutes")

    subparsers.add_parser("stats", help="Print tracking statistics")

    wk = subparsers.add_parser("worker", help="Run the cron worker against a running API")
    wk.add_argument("--base-url", default="", help="API base URL (defaults to scheduler.base_url)")

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "init-db":
        asyncio.run(cmd_init_db(args))
    elif args.command == "run-cycle":
        asyncio.run(cmd_run_cycle(args))
    elif args.command == "cleanup":
        asyncio.run(cmd_cleanup(args))
    elif args.command == "stats":
        asyncio.run(cmd_stats(args))
    elif args.command == "worker":
        asyncio.run(cmd_worker(args))


if __name__ == "__main__":
    main()
