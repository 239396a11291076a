"""Health check endpoint. Public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from cycletrack.config import get_settings

router = APIRouter(tags=["system"])
logger = logging.getLogger("cycletrack.health")


@router.get("/health")
async def health_check(request: Request) -> dict:
    """Liveness probe. Returns 200 if the API process is up.

    Also checks that the store answers.
    """
    settings = getattr(request.app.state, "settings", None) or get_settings()
    store_ok = False
    store = getattr(request.app.state, "store", None)
    if store is not None:
        try:
            store_ok = await store.ping()
        except Exception as exc:
            logger.warning("Health check store probe failed: %s", exc)

    return {
        "status": "healthy" if store_ok else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "store": settings.store_backend if store_ok else "unreachable",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
