"""FastAPI dependency providers for settings, dispatch services and cron auth."""

from __future__ import annotations

import secrets
from functools import lru_cache

from fastapi import Depends, HTTPException, Request

from roadside.config import Settings, get_settings
from roadside.services.bootstrap import DispatchServices


@lru_cache
def get_settings_dep() -> Settings:
    return get_settings()


def get_services(request: Request) -> DispatchServices:
    """The dispatch services built at startup and stored on app.state."""
    services = getattr(request.app.state, "dispatch", None)
    if services is None:
        raise HTTPException(503, "Dispatch services not initialised")
    return services


async def require_cron_key(
    request: Request,
    settings: Settings = Depends(get_settings_dep),
) -> None:
    """Require the cron API key when one is configured.

    Accepts either an ``X-Cron-Key`` header or ``Authorization: Bearer``.
    """
    expected = settings.cron_api_key
    if not expected:
        return
    provided = request.headers.get("X-Cron-Key", "")
    if not provided:
        auth = request.headers.get("Authorization", "")
        if auth.lower().startswith("bearer "):
            provided = auth[7:].strip()
    if not provided or not secrets.compare_digest(provided, expected):
        raise HTTPException(401, "Invalid or missing cron key")
