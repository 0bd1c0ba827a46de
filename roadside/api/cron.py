"""Cron endpoints driven by the schedule driver or an external scheduler."""

from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, Request

from roadside.dependencies import get_services, require_cron_key
from roadside.errors import TrackingFinished, TrackingNotFound
from roadside.models.base import utcnow
from roadside.services.bootstrap import DispatchServices

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])

_ENDPOINTS = {
    "process_batches": "POST /cron/process-batches",
    "cleanup": "POST /cron/cleanup",
    "process_ticket": "POST /cron/process-ticket/{ticket_id}",
    "maintenance": "POST /cron/maintenance",
    "stats": "GET /cron/stats",
}


async def _stats(services: DispatchServices):
    return await services.tracking.stats(services.settings.dispatch.interest_window_minutes)


@router.post("/process-batches", dependencies=[Depends(require_cron_key)])
async def process_batches(services: DispatchServices = Depends(get_services)):
    try:
        return await services.processor.run_batch_cycle()
    except Exception as e:
        logger.exception("Batch processing failed")
        raise HTTPException(500, {"step": "process_batches", "error": str(e)})


@router.post("/cleanup", dependencies=[Depends(require_cron_key)])
async def cleanup_expired(services: DispatchServices = Depends(get_services)):
    try:
        return await services.sweeper.sweep_expired()
    except Exception as e:
        logger.exception("Cleanup of expired tracking failed")
        raise HTTPException(500, {"step": "cleanup", "error": str(e)})


@router.post("/process-ticket/{ticket_id}", dependencies=[Depends(require_cron_key)])
async def process_ticket(ticket_id: str, services: DispatchServices = Depends(get_services)):
    try:
        result = await services.processor.process_ticket(ticket_id)
    except (TrackingNotFound, TrackingFinished) as e:
        raise HTTPException(400, str(e))
    return {"ticket_id": ticket_id, "result": result}


@router.post("/maintenance", dependencies=[Depends(require_cron_key)])
async def run_maintenance(services: DispatchServices = Depends(get_services)):
    """Cleanup, then a batch cycle, then fresh stats."""
    started = time.monotonic()
    step = "cleanup"
    try:
        cleanup = await services.sweeper.sweep_expired()
        step = "process_batches"
        processing = await services.processor.run_batch_cycle()
        step = "stats"
        final_stats = await _stats(services)
    except Exception as e:
        logger.exception("Maintenance cycle failed at %s", step)
        raise HTTPException(500, {"step": step, "error": str(e)})
    return {
        "cleanup": cleanup,
        "processing": processing,
        "final_stats": final_stats,
        "maintenance_ms": int((time.monotonic() - started) * 1000),
    }


@router.get("/stats", dependencies=[Depends(require_cron_key)])
async def get_stats(services: DispatchServices = Depends(get_services)):
    try:
        stats = await _stats(services)
    except Exception as e:
        logger.exception("Failed to get tracking statistics")
        raise HTTPException(500, {"step": "stats", "error": str(e)})
    return {"stats": stats, "timestamp": utcnow().isoformat()}


@router.get("/health")
async def health_check(request: Request, services: DispatchServices = Depends(get_services)):
    try:
        stats = await _stats(services)
    except Exception as e:
        logger.exception("Cron health check failed")
        raise HTTPException(500, {"step": "health", "error": str(e)})
    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "status": "ok",
        "timestamp": utcnow().isoformat(),
        "stats": stats,
        "scheduler": scheduler.status() if scheduler else None,
        "endpoints": _ENDPOINTS,
    }


@router.get("/schedule-config")
async def schedule_config(services: DispatchServices = Depends(get_services)):
    """Intended schedules, for wiring up an external scheduler."""
    sched = services.settings.scheduler
    return {
        "process_batches": {
            "endpoint": "/cron/process-batches",
            "method": "POST",
            "interval_seconds": sched.batch_interval_seconds,
            "description": "Call the next batch of mechanics for every open ticket",
        },
        "cleanup": {
            "endpoint": "/cron/cleanup",
            "method": "POST",
            "interval_seconds": sched.cleanup_interval_seconds,
            "description": "Finish tickets whose interest window has lapsed",
        },
        "maintenance": {
            "endpoint": "/cron/maintenance",
            "method": "POST",
            "interval_seconds": 6 * 3600,
            "description": "Cleanup, batch cycle and stats in one call",
        },
        "health": {
            "endpoint": "/cron/health",
            "method": "GET",
            "interval_seconds": 300,
            "description": "Health check and monitoring",
        },
    }
