"""User profile endpoints."""

from __future__ import annotations

import time
from typing import Any

from fastapi import APIRouter, HTTPException

from cycletrack.dependencies import RegisteredUser, Store
from cycletrack.models.cycle import UserProfileRead, UserProfileWrite
from cycletrack.services.store import UserProfile

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserProfileRead)
async def get_profile(user: RegisteredUser, store: Store) -> Any:
    """Get the authenticated user's profile."""
    profile = await store.get_profile(user.user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@router.put("/me", response_model=UserProfileRead)
async def put_profile(user: RegisteredUser, store: Store, body: UserProfileWrite) -> Any:
    """Create the profile at registration, or update name and email.

    ``created_at`` is set once and kept on later updates.
    """
    existing = await store.get_profile(user.user_id)
    created_at = existing.created_at if existing else int(time.time() * 1000)
    profile = UserProfile(name=body.name, email=str(body.email), created_at=created_at)
    await store.put_profile(user.user_id, profile)
    return profile
