"""Endpoints for the user's cycle settings document."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from fastapi import APIRouter, HTTPException

from cycletrack.cycle.predictor import CycleSettings
from cycletrack.dependencies import DefaultCycleSettings, RegisteredUser, Store
from cycletrack.models.cycle import (
    CycleSettingsPatch,
    CycleSettingsRead,
    CycleSettingsUpdate,
)

router = APIRouter(prefix="/settings", tags=["settings"])
logger = logging.getLogger("cycletrack.settings")


@router.get("", response_model=CycleSettingsRead)
async def get_cycle_settings(
    user: RegisteredUser, store: Store, defaults: DefaultCycleSettings
) -> Any:
    """Current settings. Defaults are stored on first read."""
    return await store.ensure_settings(user.user_id, defaults)


@router.put("", response_model=CycleSettingsRead)
async def replace_cycle_settings(
    user: RegisteredUser, store: Store, body: CycleSettingsUpdate
) -> Any:
    settings = CycleSettings(cycle_length=body.cycle_length, period_length=body.period_length)
    await store.put_settings(user.user_id, settings)
    logger.info("Settings replaced for user %s", user.user_id)
    return settings


@router.patch("", response_model=CycleSettingsRead)
async def update_cycle_settings(
    user: RegisteredUser,
    store: Store,
    defaults: DefaultCycleSettings,
    body: CycleSettingsPatch,
) -> Any:
    updates = body.model_dump(exclude_unset=True, exclude_none=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    current = await store.ensure_settings(user.user_id, defaults)
    settings = replace(current, **updates)
    await store.put_settings(user.user_id, settings)
    return settings
