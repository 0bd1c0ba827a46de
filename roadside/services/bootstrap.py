"""Wire the dispatch services together from Settings."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from roadside.config import Settings
from roadside.db.mechanic_queue import MechanicQueueStore
from roadside.db.tracking_store import TrackingStore
from roadside.services.call_gateway import CallGateway, VapiCallGateway
from roadside.services.cleanup import CleanupSweeper
from roadside.services.dispatcher import DispatchBatchProcessor
from roadside.services.post_commit import RecordCallActivity
from roadside.services.ticket_context import TicketContextLoader


@dataclass
class DispatchServices:
    settings: Settings
    tracking: TrackingStore
    queue: MechanicQueueStore
    gateway: CallGateway
    processor: DispatchBatchProcessor
    sweeper: CleanupSweeper

    async def aclose(self):
        close = getattr(self.gateway, "aclose", None)
        if close:
            await close()


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    gateway: CallGateway | None = None,
) -> DispatchServices:
    """Build the dispatch services.

    Without an explicit gateway a VapiCallGateway is created, which raises
    GatewayConfigError when credentials are missing.
    """
    tracking = TrackingStore(session_factory)
    queue = MechanicQueueStore(session_factory)
    if gateway is None:
        gateway = VapiCallGateway(settings.vapi, settings.twilio)
    processor = DispatchBatchProcessor(
        tracking=tracking,
        queue=queue,
        gateway=gateway,
        contexts=TicketContextLoader(session_factory, settings.default_company_name),
        config=settings.dispatch,
        post_commit=[RecordCallActivity(session_factory)],
    )
    sweeper = CleanupSweeper(tracking, queue, settings.dispatch.interest_window_minutes)
    return DispatchServices(
        settings=settings,
        tracking=tracking,
        queue=queue,
        gateway=gateway,
        processor=processor,
        sweeper=sweeper,
    )
