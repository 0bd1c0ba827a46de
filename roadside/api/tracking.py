"""Tracking API: start dispatch for a ticket, inspect it, record interest."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from roadside.dependencies import get_services, require_cron_key
from roadside.errors import TrackingExists, TrackingFinished, TrackingNotFound
from roadside.schemas import TrackingRead, TrackingStart
from roadside.services import tracking as tracking_service
from roadside.services.bootstrap import DispatchServices

router = APIRouter(prefix="/tracking", tags=["tracking"], dependencies=[Depends(require_cron_key)])


@router.post("/{ticket_id}", response_model=TrackingRead, status_code=201)
async def start_tracking(
    ticket_id: str,
    body: TrackingStart,
    services: DispatchServices = Depends(get_services),
):
    try:
        return await tracking_service.start_dispatch(
            services.tracking, services.queue, ticket_id, body.mechanics,
            snapshot_limit=services.settings.dispatch.snapshot_limit,
        )
    except TrackingExists as e:
        raise HTTPException(409, str(e))


@router.get("/{ticket_id}")
async def get_tracking(ticket_id: str, services: DispatchServices = Depends(get_services)):
    record = await services.tracking.get(ticket_id)
    if not record:
        raise HTTPException(404, "Tracking record not found")
    return {
        "tracking": TrackingRead.model_validate(record),
        "progress": record.progress(),
        "queued": await services.queue.count(ticket_id),
    }


@router.post("/{ticket_id}/interest", response_model=TrackingRead)
async def record_interest(ticket_id: str, services: DispatchServices = Depends(get_services)):
    try:
        return await tracking_service.mark_interest(services.tracking, ticket_id)
    except TrackingNotFound as e:
        raise HTTPException(404, str(e))
    except TrackingFinished as e:
        raise HTTPException(400, str(e))
