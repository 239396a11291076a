"""Per-user storage for cycle settings, period records and profiles.

``CycleStore`` is the capability the API layer is given: read/write the
settings document, create/list/delete period records, and subscribe to
changes for one user.  Two implementations:

    PostgresCycleStore: Supabase Postgres via asyncpg; change notification
                        through ``LISTEN/NOTIFY`` on ``cycle_changes``.
    InMemoryCycleStore: process-local dicts; used in development and tests.

Subscriber callbacks take no arguments; they re-read whatever they need.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Awaitable, Callable

import asyncpg

from cycletrack.config import Settings, get_settings
from cycletrack.cycle.predictor import CycleSettings
from cycletrack.cycle.records import PeriodRecord, sort_records
from cycletrack.services.database import get_connection

logger = logging.getLogger("cycletrack.store")

CHANGE_CHANNEL = "cycle_changes"
RECONNECT_DELAY_SECONDS = 1.0
RECONNECT_MAX_DELAY_SECONDS = 30.0

ChangeCallback = Callable[[], Awaitable[None]]
Unsubscribe = Callable[[], Awaitable[None]]


class CycleStoreError(Exception):
    """Base class for store errors the API maps to HTTP responses."""


class RecordExistsError(CycleStoreError):
    def __init__(self, record_date: date) -> None:
        super().__init__(f"A period record for {record_date.isoformat()} already exists")
        self.record_date = record_date


class RecordNotFoundError(CycleStoreError):
    def __init__(self, record_date: date) -> None:
        super().__init__(f"No period record for {record_date.isoformat()}")
        self.record_date = record_date


@dataclass(frozen=True)
class UserProfile:
    name: str
    email: str
    created_at: int  # epoch milliseconds


class CycleStore(ABC):
    """Storage and change notification for one deployment."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[ChangeCallback]] = defaultdict(list)

    # ---------- Settings ----------

    @abstractmethod
    async def get_settings(self, user_id: str) -> CycleSettings | None: ...

    @abstractmethod
    async def put_settings(self, user_id: str, settings: CycleSettings) -> None: ...

    async def ensure_settings(self, user_id: str, defaults: CycleSettings) -> CycleSettings:
        """Return the stored settings, writing ``defaults`` first if there are none."""
        current = await self.get_settings(user_id)
        if current is not None:
            return current
        logger.info("No settings for user %s; storing defaults", user_id)
        await self.put_settings(user_id, defaults)
        return defaults

    # ---------- Period records ----------

    @abstractmethod
    async def list_records(self, user_id: str) -> list[PeriodRecord]:
        """All records for the user, most recent first."""

    @abstractmethod
    async def put_record(self, user_id: str, record: PeriodRecord) -> None:
        """Create a record. Raises RecordExistsError if the date is taken."""

    @abstractmethod
    async def delete_record(self, user_id: str, record_date: date) -> None:
        """Delete a record. Raises RecordNotFoundError if there is none."""

    # ---------- Profile ----------

    @abstractmethod
    async def get_profile(self, user_id: str) -> UserProfile | None: ...

    @abstractmethod
    async def put_profile(self, user_id: str, profile: UserProfile) -> None: ...

    # ---------- Change notification ----------

    async def subscribe(self, user_id: str, on_change: ChangeCallback) -> Unsubscribe:
        """Call ``on_change`` after every settings or record write for ``user_id``.

        Returns an async callable that removes the subscription.
        """
        await self._start_listening()
        self._subscribers[user_id].append(on_change)

        async def unsubscribe() -> None:
            callbacks = self._subscribers.get(user_id)
            if callbacks and on_change in callbacks:
                callbacks.remove(on_change)
                if not callbacks:
                    del self._subscribers[user_id]

        return unsubscribe

    def subscriber_count(self, user_id: str) -> int:
        return len(self._subscribers.get(user_id, ()))

    async def _start_listening(self) -> None:
        """Hook for backends that need a listener before notifications arrive."""

    async def _dispatch(self, user_id: str) -> None:
        for callback in list(self._subscribers.get(user_id, ())):
            try:
                await callback()
            except Exception:
                logger.exception("Change callback failed for user %s", user_id)

    async def ping(self) -> bool:
        """True when the backing storage is reachable."""
        return True

    async def close(self) -> None:
        self._subscribers.clear()


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryCycleStore(CycleStore):
    """Process-local store. Data is lost on restart."""

    def __init__(self) -> None:
        super().__init__()
        self._settings: dict[str, CycleSettings] = {}
        self._records: dict[str, dict[date, PeriodRecord]] = defaultdict(dict)
        self._profiles: dict[str, UserProfile] = {}

    async def get_settings(self, user_id: str) -> CycleSettings | None:
        return self._settings.get(user_id)

    async def put_settings(self, user_id: str, settings: CycleSettings) -> None:
        self._settings[user_id] = settings
        await self._dispatch(user_id)

    async def list_records(self, user_id: str) -> list[PeriodRecord]:
        return sort_records(self._records.get(user_id, {}).values())

    async def put_record(self, user_id: str, record: PeriodRecord) -> None:
        records = self._records[user_id]
        if record.date in records:
            raise RecordExistsError(record.date)
        records[record.date] = record
        await self._dispatch(user_id)

    async def delete_record(self, user_id: str, record_date: date) -> None:
        records = self._records.get(user_id, {})
        if record_date not in records:
            raise RecordNotFoundError(record_date)
        del records[record_date]
        await self._dispatch(user_id)

    async def get_profile(self, user_id: str) -> UserProfile | None:
        return self._profiles.get(user_id)

    async def put_profile(self, user_id: str, profile: UserProfile) -> None:
        self._profiles[user_id] = profile


# ---------------------------------------------------------------------------
# Postgres
# ---------------------------------------------------------------------------


class PostgresCycleStore(CycleStore):
    """Supabase Postgres store.

    Tables::

        cycle_settings (user_id PK, cycle_length, period_length, updated_at)
        period_records (user_id, record_date, timestamp_ms, created_at,
                        PRIMARY KEY (user_id, record_date))
        user_profiles  (user_id PK, name, email, created_at_ms)

    Every settings or record write runs ``pg_notify('cycle_changes', user_id)``
    in the same transaction.  A single listener connection per process fans
    notifications out to subscribers.  If that connection drops while anyone is
    subscribed it is re-opened with backoff and every subscriber is refreshed.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        super().__init__()
        self._settings_cfg = settings or get_settings()
        self._listener: asyncpg.Connection | None = None
        self._listener_lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()
        self._closing = False

    async def get_settings(self, user_id: str) -> CycleSettings | None:
        async with get_connection(user_id=user_id) as conn:
            row = await conn.fetchrow(
                "SELECT cycle_length, period_length FROM cycle_settings WHERE user_id = $1",
                user_id,
            )
        if row is None:
            return None
        return CycleSettings(cycle_length=row["cycle_length"], period_length=row["period_length"])

    async def put_settings(self, user_id: str, settings: CycleSettings) -> None:
        async with get_connection(user_id=user_id) as conn:
            await conn.execute(
                """
                INSERT INTO cycle_settings (user_id, cycle_length, period_length)
                VALUES ($1, $2, $3)
                ON CONFLICT (user_id) DO UPDATE SET
                    cycle_length = EXCLUDED.cycle_length,
                    period_length = EXCLUDED.period_length,
                    updated_at = NOW()
                """,
                user_id, settings.cycle_length, settings.period_length,
            )
            await conn.execute("SELECT pg_notify($1, $2)", CHANGE_CHANNEL, user_id)

    async def list_records(self, user_id: str) -> list[PeriodRecord]:
        async with get_connection(user_id=user_id) as conn:
            rows = await conn.fetch(
                """
                SELECT record_date, timestamp_ms FROM period_records
                WHERE user_id = $1
                ORDER BY timestamp_ms DESC
                """,
                user_id,
            )
        return [PeriodRecord(date=r["record_date"], timestamp=r["timestamp_ms"]) for r in rows]

    async def put_record(self, user_id: str, record: PeriodRecord) -> None:
        async with get_connection(user_id=user_id) as conn:
            inserted = await conn.fetchval(
                """
                INSERT INTO period_records (user_id, record_date, timestamp_ms)
                VALUES ($1, $2, $3)
                ON CONFLICT (user_id, record_date) DO NOTHING
                RETURNING record_date
                """,
                user_id, record.date, record.timestamp,
            )
            if inserted is None:
                raise RecordExistsError(record.date)
            await conn.execute("SELECT pg_notify($1, $2)", CHANGE_CHANNEL, user_id)

    async def delete_record(self, user_id: str, record_date: date) -> None:
        async with get_connection(user_id=user_id) as conn:
            result = await conn.execute(
                "DELETE FROM period_records WHERE user_id = $1 AND record_date = $2",
                user_id, record_date,
            )
            if result == "DELETE 0":
                raise RecordNotFoundError(record_date)
            await conn.execute("SELECT pg_notify($1, $2)", CHANGE_CHANNEL, user_id)

    async def get_profile(self, user_id: str) -> UserProfile | None:
        async with get_connection(user_id=user_id) as conn:
            row = await conn.fetchrow(
                "SELECT name, email, created_at_ms FROM user_profiles WHERE user_id = $1",
                user_id,
            )
        if row is None:
            return None
        return UserProfile(name=row["name"], email=row["email"], created_at=row["created_at_ms"])

    async def put_profile(self, user_id: str, profile: UserProfile) -> None:
        async with get_connection(user_id=user_id) as conn:
            await conn.execute(
                """
                INSERT INTO user_profiles (user_id, name, email, created_at_ms)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (user_id) DO UPDATE SET
                    name = EXCLUDED.name,
                    email = EXCLUDED.email
                """,
                user_id, profile.name, profile.email, profile.created_at,
            )

    async def ping(self) -> bool:
        async with get_connection() as conn:
            await conn.fetchval("SELECT 1")
        return True

    # ---------- LISTEN/NOTIFY ----------

    async def _start_listening(self) -> None:
        async with self._listener_lock:
            if self._listener is not None and not self._listener.is_closed():
                return
            self._listener = await asyncpg.connect(self._settings_cfg.database_url)
            await self._listener.add_listener(CHANGE_CHANNEL, self._on_notify)
            self._listener.add_termination_listener(self._on_listener_terminated)
            logger.info("Listening for changes on %s", CHANGE_CHANNEL)

    def _on_notify(
        self, connection: asyncpg.Connection, pid: int, channel: str, payload: str
    ) -> None:
        if payload not in self._subscribers:
            return
        self._track(self._dispatch(payload))

    def _on_listener_terminated(self, connection: asyncpg.Connection) -> None:
        if connection is not self._listener or self._closing:
            return
        logger.warning("Change listener connection lost")
        self._listener = None
        if self._subscribers:
            self._track(self._reconnect())

    async def _reconnect(self) -> None:
        """Re-open the listener, then refresh every subscriber for changes missed meanwhile."""
        delay = RECONNECT_DELAY_SECONDS
        while self._subscribers and not self._closing:
            try:
                await self._start_listening()
            except (OSError, asyncpg.PostgresError, asyncio.TimeoutError) as exc:
                logger.warning("Change listener reconnect failed: %s; retrying in %.0fs", exc, delay)
                await asyncio.sleep(delay)
                delay = min(delay * 2, RECONNECT_MAX_DELAY_SECONDS)
                continue
            logger.info("Change listener reconnected")
            for user_id in list(self._subscribers):
                await self._dispatch(user_id)
            return

    def _track(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def close(self) -> None:
        self._closing = True
        await super().close()
        if self._listener is not None:
            self._listener.remove_termination_listener(self._on_listener_terminated)
            await self._listener.remove_listener(CHANGE_CHANNEL, self._on_notify)
            await self._listener.close()
            self._listener = None
            logger.info("Change listener closed")


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_store(settings: Settings | None = None) -> CycleStore:
    s = settings or get_settings()
    if s.store_backend == "memory":
        logger.warning("Using in-memory store; data will not survive a restart")
        return InMemoryCycleStore()
    if s.store_backend == "postgres":
        return PostgresCycleStore(s)
    raise ValueError(f"Unknown store backend: {s.store_backend!r}")
