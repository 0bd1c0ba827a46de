"""Shared fixtures: a throwaway SQLite database and a fake call gateway."""

from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from roadside.config import DispatchConfig, Settings
from roadside.db import crud
from roadside.db.mechanic_queue import MechanicQueueStore
from roadside.db.tracking_store import TrackingStore
from roadside.models import Base
from roadside.services.bootstrap import build_services
from roadside.services.dispatcher import DispatchBatchProcessor
from roadside.services.post_commit import RecordCallActivity
from roadside.services.ticket_context import TicketContextLoader

from tests.factories import FakeGateway


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'dispatch.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def tracking(session_factory):
    return TrackingStore(session_factory)


@pytest.fixture
def queue(session_factory):
    return MechanicQueueStore(session_factory)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def seed_ticket(session_factory):
    async def _seed(ticket_id: str, organization_id: str = "org-1", **fields):
        defaults = {
            "vehicle_color": "white",
            "vehicle_make": "Freightliner",
            "vehicle_model": "Cascadia",
            "vehicle_year": "2019",
            "license_plate": "TRK-442",
            "breakdown_address": "I-80 Exit 112,  Des Moines, IA",
            "breakdown_reason": "flat tire",
            "owner_phone": "+15550009999",
        }
        defaults.update(fields)
        async with session_factory() as db:
            return await crud.create_ticket(db, organization_id, id=ticket_id, **defaults)
    return _seed


@pytest.fixture
def make_processor(session_factory, tracking, queue, gateway):
    def _make(post_commit=None, gateway_override=None, **config):
        config.setdefault("pause_when_busy", False)
        return DispatchBatchProcessor(
            tracking=tracking,
            queue=queue,
            gateway=gateway_override or gateway,
            contexts=TicketContextLoader(session_factory, "24Hr Truck Services"),
            config=DispatchConfig(**config),
            post_commit=[RecordCallActivity(session_factory)] if post_commit is None else post_commit,
        )
    return _make


@pytest.fixture
def services(session_factory, gateway):
    settings = Settings(cron_api_key="", dispatch=DispatchConfig(pause_when_busy=False))
    return build_services(settings, session_factory, gateway=gateway)
