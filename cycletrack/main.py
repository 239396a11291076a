"""CycleTrack API: FastAPI application entry point.

Run locally:
    uvicorn cycletrack.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cycletrack.config import Settings, get_settings
from cycletrack.middleware.auth import JWTAuthMiddleware
from cycletrack.middleware.rate_limit import RateLimitMiddleware
from cycletrack.routers import cycle_settings, health, periods, predictions, users
from cycletrack.services.database import close_pool, init_pool
from cycletrack.services.store import CycleStore, PostgresCycleStore, create_store

# ---------- Logging ----------

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("cycletrack")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks."""
    settings: Settings = app.state.settings
    logger.info(
        "Starting CycleTrack API v%s [%s, store=%s]",
        settings.app_version,
        settings.environment,
        settings.store_backend,
    )
    owns_store = app.state.store is None
    if owns_store:
        app.state.store = create_store(settings)
    uses_pool = isinstance(app.state.store, PostgresCycleStore)
    if uses_pool:
        await init_pool(settings)
    yield
    if owns_store:
        await app.state.store.close()
    if uses_pool:
        await close_pool()
    logger.info("CycleTrack API shut down")


# ---------- App factory ----------

def create_app(settings: Settings | None = None, store: CycleStore | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="CycleTrack API",
        description=(
            "Personal cycle tracking: record period start dates and get "
            "next-period, ovulation and fertile-window predictions."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store

    # ---------- Middleware (last added runs first) ----------

    app.add_middleware(RateLimitMiddleware, settings=settings)

    app.add_middleware(JWTAuthMiddleware, settings=settings)

    # CORS must wrap auth so preflight and 401 responses carry CORS headers
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"],
    )

    # ---------- Health check (outside v1 prefix) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    v1_prefix = "/api/v1"

    app.include_router(cycle_settings.router, prefix=v1_prefix)
    app.include_router(periods.router, prefix=v1_prefix)
    app.include_router(predictions.router, prefix=v1_prefix)
    app.include_router(users.router, prefix=v1_prefix)

    return app


app = create_app()
