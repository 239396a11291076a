"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from cycletrack.config import Settings, get_settings
from cycletrack.cycle.predictor import CycleSettings
from cycletrack.services.store import CycleStore


@dataclass(frozen=True)
class AuthContext:
    """Authenticated user context extracted from the bearer JWT."""

    user_id: str  # identity provider subject (``sub`` claim)
    email: str | None = None
    is_anonymous: bool = False


async def get_current_user(request: Request) -> AuthContext:
    """Extract the authenticated user from the request state.

    The auth middleware sets ``request.state.auth`` before routes run.
    """
    auth: AuthContext | None = getattr(request.state, "auth", None)
    if auth is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return auth


async def get_registered_user(
    auth: Annotated[AuthContext, Depends(get_current_user)],
) -> AuthContext:
    """Anonymous sessions have no data of their own and may not write any."""
    if auth.is_anonymous:
        raise HTTPException(status_code=403, detail="A registered account is required")
    return auth


def get_store(request: Request) -> CycleStore:
    store: CycleStore | None = getattr(request.app.state, "store", None)
    if store is None:
        raise RuntimeError("Cycle store not initialized")
    return store


def get_app_settings(request: Request) -> Settings:
    """Settings the app was created with."""
    return getattr(request.app.state, "settings", None) or get_settings()


def get_default_cycle_settings(
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> CycleSettings:
    return CycleSettings(
        cycle_length=settings.default_cycle_length,
        period_length=settings.default_period_length,
    )


# Annotated shortcuts for route signatures
RegisteredUser = Annotated[AuthContext, Depends(get_registered_user)]
Store = Annotated[CycleStore, Depends(get_store)]
DefaultCycleSettings = Annotated[CycleSettings, Depends(get_default_cycle_settings)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
