"""Live prediction feed for one user.

Subscribes to store changes and recomputes the prediction summary after
every settings or period-record write, so a connected dashboard always
shows the prediction for the most recent record.

Usage::

    async with PredictionFeed(store, user_id, defaults) as feed:
        summary = await feed.get()  # PredictionSummary, or None when there is nothing to predict
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Callable

from cycletrack.cycle.calendar import local_today
from cycletrack.cycle.predictor import CycleSettings
from cycletrack.cycle.summary import PredictionSummary, summarize
from cycletrack.services.store import CycleStore, Unsubscribe

logger = logging.getLogger("cycletrack.feed")


async def current_summary(
    store: CycleStore,
    user_id: str,
    defaults: CycleSettings,
    today: date | None = None,
) -> PredictionSummary | None:
    """Prediction summary from the user's latest record and current settings."""
    settings = await store.ensure_settings(user_id, defaults)
    records = await store.list_records(user_id)
    return summarize(records, settings, today=today)


class PredictionFeed:
    """Queue of prediction summaries, one per change, starting with the current one."""

    def __init__(
        self,
        store: CycleStore,
        user_id: str,
        defaults: CycleSettings,
        today: Callable[[], date] = local_today,
    ) -> None:
        self._store = store
        self._user_id = user_id
        self._defaults = defaults
        self._today = today
        self._queue: asyncio.Queue[PredictionSummary | None] = asyncio.Queue()
        self._unsubscribe: Unsubscribe | None = None

    async def _push(self) -> None:
        summary = await current_summary(
            self._store, self._user_id, self._defaults, today=self._today()
        )
        await self._queue.put(summary)

    async def __aenter__(self) -> PredictionFeed:
        # Write defaults before subscribing so they don't trigger a second update
        await self._store.ensure_settings(self._user_id, self._defaults)
        self._unsubscribe = await self._store.subscribe(self._user_id, self._push)
        try:
            await self._push()
        except BaseException:
            await self._unsubscribe()
            self._unsubscribe = None
            raise
        logger.debug("Prediction feed opened for user %s", self._user_id)
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        if self._unsubscribe is not None:
            await self._unsubscribe()
            self._unsubscribe = None
        logger.debug("Prediction feed closed for user %s", self._user_id)

    async def get(self) -> PredictionSummary | None:
        return await self._queue.get()

