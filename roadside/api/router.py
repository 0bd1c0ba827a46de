"""Central router that includes all sub-routers."""

from fastapi import APIRouter

from roadside.api.cron import router as cron_router
from roadside.api.tracking import router as tracking_router

api_router = APIRouter()
api_router.include_router(cron_router)
api_router.include_router(tracking_router)
