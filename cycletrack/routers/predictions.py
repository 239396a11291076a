"""Prediction endpoints: current summary, ad-hoc preview and a live stream.

A ``null`` body means there is nothing to predict from yet (no records, or
settings the predictor declines).  Clients show the first-use state for it.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, AsyncIterator

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from cycletrack.cycle.calendar import local_today
from cycletrack.cycle.predictor import CycleSettings, predict
from cycletrack.cycle.summary import PredictionSummary
from cycletrack.dependencies import AppSettings, DefaultCycleSettings, RegisteredUser, Store
from cycletrack.models.cycle import (
    PredictionPreviewRequest,
    PredictionRead,
    PredictionSummaryRead,
)
from cycletrack.services.feed import PredictionFeed, current_summary

router = APIRouter(prefix="/predictions", tags=["predictions"])
logger = logging.getLogger("cycletrack.predictions")

# Comment line sent while idle so proxies keep the stream open
KEEPALIVE_SECONDS = 15.0


@router.get("/current", response_model=PredictionSummaryRead | None)
async def get_current_prediction(
    user: RegisteredUser,
    store: Store,
    defaults: DefaultCycleSettings,
    settings: AppSettings,
) -> Any:
    """Prediction from the most recent period record and current settings."""
    today = local_today(settings.record_timezone)
    return await current_summary(store, user.user_id, defaults, today=today)


@router.post("/preview", response_model=PredictionRead | None)
async def preview_prediction(user: RegisteredUser, body: PredictionPreviewRequest) -> Any:
    """Run the predictor on arbitrary input without touching stored data."""
    settings = CycleSettings(cycle_length=body.cycle_length, period_length=body.period_length)
    return predict(body.last_period_date, settings)


def _encode(summary: PredictionSummary | None) -> str:
    if summary is None:
        data = "null"
    else:
        data = PredictionSummaryRead.model_validate(summary).model_dump_json(by_alias=True)
    return f"event: prediction\ndata: {data}\n\n"


async def _event_stream(feed: PredictionFeed) -> AsyncIterator[str]:
    async with feed:
        while True:
            try:
                summary = await asyncio.wait_for(feed.get(), timeout=KEEPALIVE_SECONDS)
            except asyncio.TimeoutError:
                yield ": keep-alive\n\n"
                continue
            yield _encode(summary)


@router.get("/stream")
async def stream_predictions(
    user: RegisteredUser,
    store: Store,
    defaults: DefaultCycleSettings,
    settings: AppSettings,
) -> StreamingResponse:
    """Server-sent events: the current prediction, then one per change."""
    logger.info("Prediction stream opened for user %s", user.user_id)
    feed = PredictionFeed(
        store, user.user_id, defaults, today=partial(local_today, settings.record_timezone)
    )
    return StreamingResponse(
        _event_stream(feed),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
