"""End-to-end API tests through the middleware stack and in-memory store."""

from __future__ import annotations

import asyncio
import json
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from cycletrack.config import Settings
from cycletrack.cycle.calendar import local_today
from cycletrack.cycle.predictor import CycleSettings
from cycletrack.cycle.records import PeriodRecord
from cycletrack.main import create_app
from cycletrack.routers.predictions import _event_stream
from cycletrack.routers.tests.conftest import TEST_USER_ID, make_token
from cycletrack.services.feed import PredictionFeed
from cycletrack.services.store import InMemoryCycleStore

API = "/api/v1"


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class TestAuth:
    def test_health_is_public(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["store"] == "memory"

    def test_missing_token(self, client: TestClient) -> None:
        resp = client.get(f"{API}/settings")
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Missing or invalid Authorization header"

    def test_expired_token(self, client: TestClient, headers_for) -> None:
        resp = client.get(f"{API}/settings", headers=headers_for(expires_in=-60))
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Token expired"

    def test_wrong_signature(self, client: TestClient) -> None:
        token = make_token(secret="some-other-secret-of-sufficient-length")
        resp = client.get(f"{API}/settings", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Invalid token"

    def test_wrong_audience(self, client: TestClient, headers_for) -> None:
        resp = client.get(f"{API}/settings", headers=headers_for(aud="anon"))
        assert resp.status_code == 401

    def test_anonymous_session_denied(self, client: TestClient, headers_for) -> None:
        headers = headers_for(is_anonymous=True)
        assert client.get(f"{API}/settings", headers=headers).status_code == 403
        resp = client.post(f"{API}/periods", json={"date": "2024-01-20"}, headers=headers)
        assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:
    def test_defaults_created_on_first_read(
        self, client: TestClient, auth_headers: dict, store: InMemoryCycleStore
    ) -> None:
        resp = client.get(f"{API}/settings", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json() == {"cycleLength": 28, "periodLength": 5}
        assert asyncio.run(store.get_settings(TEST_USER_ID)) == CycleSettings(28, 5)

    def test_replace(self, client: TestClient, auth_headers: dict) -> None:
        resp = client.put(
            f"{API}/settings", json={"cycleLength": 35, "periodLength": 7}, headers=auth_headers
        )
        assert resp.status_code == 200
        assert client.get(f"{API}/settings", headers=auth_headers).json() == {
            "cycleLength": 35,
            "periodLength": 7,
        }

    def test_snake_case_accepted(self, client: TestClient, auth_headers: dict) -> None:
        resp = client.put(
            f"{API}/settings", json={"cycle_length": 30, "period_length": 4}, headers=auth_headers
        )
        assert resp.json() == {"cycleLength": 30, "periodLength": 4}

    @pytest.mark.parametrize("body", [{"cycleLength": 0, "periodLength": 5}, {"cycleLength": 28, "periodLength": -1}])
    def test_non_positive_rejected(self, client: TestClient, auth_headers: dict, body: dict) -> None:
        assert client.put(f"{API}/settings", json=body, headers=auth_headers).status_code == 422

    def test_patch_one_field(self, client: TestClient, auth_headers: dict) -> None:
        resp = client.patch(f"{API}/settings", json={"periodLength": 6}, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json() == {"cycleLength": 28, "periodLength": 6}

    def test_patch_empty(self, client: TestClient, auth_headers: dict) -> None:
        assert client.patch(f"{API}/settings", json={}, headers=auth_headers).status_code == 400


# ---------------------------------------------------------------------------
# Period records
# ---------------------------------------------------------------------------


class TestPeriods:
    def test_create_and_list(self, client: TestClient, auth_headers: dict) -> None:
        for d in ["2024-01-20", "2024-03-16", "2024-02-17"]:
            resp = client.post(f"{API}/periods", json={"date": d}, headers=auth_headers)
            assert resp.status_code == 201

        resp = client.get(f"{API}/periods", headers=auth_headers)
        assert [r["date"] for r in resp.json()] == ["2024-03-16", "2024-02-17", "2024-01-20"]
        assert resp.json()[-1]["timestamp"] == 1705708800000

    def test_duplicate_date(self, client: TestClient, auth_headers: dict) -> None:
        client.post(f"{API}/periods", json={"date": "2024-01-20"}, headers=auth_headers)
        resp = client.post(f"{API}/periods", json={"date": "2024-01-20"}, headers=auth_headers)
        assert resp.status_code == 409

    @pytest.mark.parametrize("value", ["", "2024-02-30", "yesterday", "2024-01-20T10:00:00"])
    def test_invalid_date(self, client: TestClient, auth_headers: dict, value: str) -> None:
        resp = client.post(f"{API}/periods", json={"date": value}, headers=auth_headers)
        assert resp.status_code == 422

    def test_delete(self, client: TestClient, auth_headers: dict) -> None:
        client.post(f"{API}/periods", json={"date": "2024-01-20"}, headers=auth_headers)
        assert client.delete(f"{API}/periods/2024-01-20", headers=auth_headers).status_code == 204
        assert client.get(f"{API}/periods", headers=auth_headers).json() == []
        assert client.delete(f"{API}/periods/2024-01-20", headers=auth_headers).status_code == 404

    def test_records_isolated_per_user(self, client: TestClient, auth_headers: dict, headers_for) -> None:
        client.post(f"{API}/periods", json={"date": "2024-01-20"}, headers=auth_headers)
        other = headers_for(sub="someone-else")
        assert client.get(f"{API}/periods", headers=other).json() == []


# ---------------------------------------------------------------------------
# Predictions
# ---------------------------------------------------------------------------


class TestPredictions:
    def test_null_without_records(self, client: TestClient, auth_headers: dict) -> None:
        resp = client.get(f"{API}/predictions/current", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json() is None

    def test_uses_latest_record(self, client: TestClient, auth_headers: dict) -> None:
        client.post(f"{API}/periods", json={"date": "2023-12-23"}, headers=auth_headers)
        client.post(f"{API}/periods", json={"date": "2024-01-20"}, headers=auth_headers)

        body = client.get(f"{API}/predictions/current", headers=auth_headers).json()
        assert body["latestPeriodDate"] == "2024-01-20"
        assert body["prediction"] == {
            "nextPeriodStart": "2024-02-17",
            "nextPeriodEnd": "2024-02-21",
            "ovulationDay": "2024-02-03",
            "fertileWindowStart": "2024-01-29",
            "fertileWindowEnd": "2024-02-04",
            "cycleLength": 28,
        }
        assert body["display"]["nextPeriodStart"] == "17.02.2024"
        assert body["daysUntilNextPeriod"] == (date(2024, 2, 17) - local_today("UTC")).days
        assert body["nextPeriodStatus"] == "passed"

    def test_recomputed_after_settings_change(self, client: TestClient, auth_headers: dict) -> None:
        client.post(f"{API}/periods", json={"date": "2024-06-01"}, headers=auth_headers)
        client.put(f"{API}/settings", json={"cycleLength": 35, "periodLength": 7}, headers=auth_headers)

        prediction = client.get(f"{API}/predictions/current", headers=auth_headers).json()["prediction"]
        assert prediction["nextPeriodStart"] == "2024-07-06"
        assert prediction["nextPeriodEnd"] == "2024-07-12"
        assert prediction["cycleLength"] == 35

    def test_upcoming_countdown(self, client: TestClient, auth_headers: dict) -> None:
        last = local_today("UTC") - timedelta(days=20)
        client.post(f"{API}/periods", json={"date": last.isoformat()}, headers=auth_headers)
        body = client.get(f"{API}/predictions/current", headers=auth_headers).json()
        assert body["daysUntilNextPeriod"] == 8
        assert body["daysUntilOvulation"] == -6
        assert body["nextPeriodStatus"] == "upcoming"

    @pytest.mark.parametrize("zone", ["Pacific/Kiritimati", "Etc/GMT+12"])
    def test_countdown_uses_record_timezone(
        self, test_settings: Settings, store: InMemoryCycleStore, auth_headers: dict, zone: str
    ) -> None:
        app = create_app(settings=test_settings.model_copy(update={"record_timezone": zone}), store=store)
        with TestClient(app) as c:
            today = local_today(zone)
            c.post(f"{API}/periods", json={"date": today.isoformat()}, headers=auth_headers)
            body = c.get(f"{API}/predictions/current", headers=auth_headers).json()
        assert body["daysUntilNextPeriod"] == 28
        assert body["nextPeriodStatus"] == "upcoming"

    def test_preview(self, client: TestClient, auth_headers: dict) -> None:
        resp = client.post(
            f"{API}/predictions/preview",
            json={"lastPeriodDate": "2024-02-15", "cycleLength": 28, "periodLength": 5},
            headers=auth_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["ovulationDay"] == "2024-02-29"

    @pytest.mark.parametrize(
        "body",
        [
            {"lastPeriodDate": "", "cycleLength": 28, "periodLength": 5},
            {"lastPeriodDate": None, "cycleLength": 28, "periodLength": 5},
            {"cycleLength": 28, "periodLength": 5},
            {"lastPeriodDate": "garbage", "cycleLength": 28, "periodLength": 5},
            {"lastPeriodDate": "2024-01-20", "cycleLength": 0, "periodLength": 5},
            {"lastPeriodDate": "2024-01-20", "cycleLength": 28, "periodLength": -2},
        ],
    )
    def test_preview_invalid_input_is_null(self, client: TestClient, auth_headers: dict, body: dict) -> None:
        resp = client.post(f"{API}/predictions/preview", json=body, headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json() is None


class TestPredictionStream:
    @pytest.mark.asyncio
    async def test_events_follow_changes(self) -> None:
        store = InMemoryCycleStore()
        feed = PredictionFeed(store, TEST_USER_ID, CycleSettings(28, 5), today=lambda: date(2024, 2, 10))
        events = _event_stream(feed)

        first = await asyncio.wait_for(events.__anext__(), 1)
        assert first == "event: prediction\ndata: null\n\n"

        await store.put_record(TEST_USER_ID, PeriodRecord.for_date(date(2024, 1, 20)))
        second = await asyncio.wait_for(events.__anext__(), 1)
        assert second.startswith("event: prediction\ndata: ")
        payload = json.loads(second.split("data: ", 1)[1])
        assert payload["prediction"]["nextPeriodStart"] == "2024-02-17"
        assert payload["daysUntilNextPeriod"] == 7
        assert payload["nextPeriodStatus"] == "upcoming"

        await events.aclose()
        assert store.subscriber_count(TEST_USER_ID) == 0


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


class TestProfile:
    def test_missing(self, client: TestClient, auth_headers: dict) -> None:
        assert client.get(f"{API}/users/me", headers=auth_headers).status_code == 404

    def test_create_then_update_keeps_created_at(self, client: TestClient, auth_headers: dict) -> None:
        created = client.put(
            f"{API}/users/me", json={"name": "  Ada Lovelace ", "email": "ada@example.com"}, headers=auth_headers
        ).json()
        assert created["name"] == "Ada Lovelace"
        assert created["createdAt"] > 0

        updated = client.put(
            f"{API}/users/me", json={"name": "Ada", "email": "ada@example.com"}, headers=auth_headers
        ).json()
        assert updated["name"] == "Ada"
        assert updated["createdAt"] == created["createdAt"]
        assert client.get(f"{API}/users/me", headers=auth_headers).json() == updated

    def test_invalid_email(self, client: TestClient, auth_headers: dict) -> None:
        resp = client.put(f"{API}/users/me", json={"name": "Ada", "email": "nope"}, headers=auth_headers)
        assert resp.status_code == 422


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


def test_rate_limit(test_settings: Settings, store: InMemoryCycleStore, auth_headers: dict) -> None:
    app = create_app(settings=test_settings.model_copy(update={"rate_limit_per_minute": 2}), store=store)
    with TestClient(app) as c:
        assert c.get(f"{API}/settings", headers=auth_headers).status_code == 200
        resp = c.get(f"{API}/settings", headers=auth_headers)
        assert resp.headers["X-RateLimit-Remaining"] == "0"
        limited = c.get(f"{API}/settings", headers=auth_headers)
        assert limited.status_code == 429
        assert int(limited.headers["Retry-After"]) >= 1
        # Health stays reachable
        assert c.get("/health").status_code == 200
