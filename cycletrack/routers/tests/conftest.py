"""Shared fixtures for API tests.

Requests go through the real middleware stack with HS256 tokens signed by
a test secret, against the in-memory store.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Iterator

import jwt as pyjwt
import pytest
from fastapi.testclient import TestClient

from cycletrack.config import Settings
from cycletrack.main import create_app
from cycletrack.services.store import InMemoryCycleStore

TEST_SECRET = "test-secret-with-at-least-32-bytes!!"
TEST_USER_ID = "8c1f7d2e-5b7a-4f0e-9d33-2a6f0c1b9e44"


def make_token(
    sub: str = TEST_USER_ID,
    *,
    is_anonymous: bool = False,
    expires_in: int = 3600,
    secret: str = TEST_SECRET,
    **claims: Any,
) -> str:
    now = int(time.time())
    payload = {
        "sub": sub,
        "aud": "authenticated",
        "iat": now,
        "exp": now + expires_in,
        "email": "ada@example.com",
        "is_anonymous": is_anonymous,
        **claims,
    }
    return pyjwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        store_backend="memory",
        jwt_secret=TEST_SECRET,
        jwt_jwks_url="",
        jwt_audience="authenticated",
        rate_limit_per_minute=1000,
        record_timezone="UTC",
    )


@pytest.fixture
def store() -> InMemoryCycleStore:
    return InMemoryCycleStore()


@pytest.fixture
def client(test_settings: Settings, store: InMemoryCycleStore) -> Iterator[TestClient]:
    app = create_app(settings=test_settings, store=store)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def headers_for() -> Callable[..., dict[str, str]]:
    def _headers(**kwargs: Any) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(**kwargs)}"}

    return _headers
