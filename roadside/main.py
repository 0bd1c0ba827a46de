"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from roadside.api.router import api_router
from roadside.config import get_settings
from roadside.db.engine import async_session_factory, create_tables, engine
from roadside.services.bootstrap import build_services
from roadside.services.scheduler import ScheduleDriver, in_process_jobs

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    # Missing call gateway credentials stop the process here
    services = build_services(settings, async_session_factory)
    await create_tables()
    app.state.dispatch = services

    driver = None
    if settings.scheduler.enabled:
        driver = ScheduleDriver(
            in_process_jobs(services.processor, services.sweeper, settings.scheduler),
            status_interval_seconds=settings.scheduler.status_interval_seconds,
        )
        driver.start()
        app.state.scheduler = driver
        logger.info("In-process scheduler started")

    yield

    if driver:
        await driver.stop()
    await services.aclose()
    await engine.dispose()


app = FastAPI(
    title="Roadside Dispatch",
    description="Calls nearby mechanics in batches until one takes the breakdown job.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(api_router)
