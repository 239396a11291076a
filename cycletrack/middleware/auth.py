"""Supabase Auth JWT verification middleware for FastAPI.

Validates the Bearer token on every request (except public routes),
extracts claims, and sets ``request.state.auth`` with the user context
that route handlers consume via ``get_current_user``.

Tokens are verified against the project's JWKS endpoint when one is
configured, otherwise against the shared HS256 secret.
"""

from __future__ import annotations

import logging
from typing import Any

import jwt as pyjwt
from fastapi import Request, Response
from jwt import PyJWKClient
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from cycletrack.config import Settings, get_settings
from cycletrack.dependencies import AuthContext

logger = logging.getLogger("cycletrack.auth")

# Paths that do not require authentication
PUBLIC_PATHS: set[str] = {
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
}


def _is_public(path: str) -> bool:
    return path in PUBLIC_PATHS or path.startswith("/docs") or path.startswith("/redoc")


def _unauthorized(detail: str) -> Response:
    return Response(
        content=f'{{"detail":"{detail}"}}',
        status_code=401,
        media_type="application/json",
    )


class JWTAuthMiddleware(BaseHTTPMiddleware):
    """Verify Supabase-issued JWTs and populate request.state.auth."""

    def __init__(self, app: Any, settings: Settings | None = None) -> None:
        super().__init__(app)
        self._settings = settings or get_settings()
        self._jwks_client: PyJWKClient | None = None
        if self._settings.jwt_jwks_url:
            self._jwks_client = PyJWKClient(
                self._settings.jwt_jwks_url,
                cache_keys=True,
                lifespan=3600,
            )
        elif not self._settings.jwt_secret:
            logger.warning("No JWKS URL or JWT secret configured; every request will be rejected")

    def _decode(self, token: str) -> dict[str, Any]:
        options = {"verify_aud": self._settings.jwt_audience is not None}
        if self._jwks_client is not None:
            signing_key = self._jwks_client.get_signing_key_from_jwt(token)
            return pyjwt.decode(
                token,
                signing_key.key,
                algorithms=self._settings.jwt_algorithms,
                audience=self._settings.jwt_audience,
                options=options,
            )
        if not self._settings.jwt_secret:
            raise pyjwt.InvalidTokenError("No verification key configured")
        return pyjwt.decode(
            token,
            self._settings.jwt_secret,
            algorithms=["HS256"],
            audience=self._settings.jwt_audience,
            options=options,
        )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if _is_public(request.url.path):
            return await call_next(request)

        # OPTIONS requests pass through (CORS preflight)
        if request.method == "OPTIONS":
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return _unauthorized("Missing or invalid Authorization header")

        token = auth_header.removeprefix("Bearer ").strip()

        try:
            payload = self._decode(token)
        except pyjwt.ExpiredSignatureError:
            return _unauthorized("Token expired")
        except (pyjwt.InvalidTokenError, pyjwt.PyJWKClientError) as exc:
            logger.warning("JWT validation failed: %s", exc)
            return _unauthorized("Invalid token")

        user_id: str = payload.get("sub", "")
        if not user_id:
            return _unauthorized("Invalid token")

        request.state.auth = AuthContext(
            user_id=user_id,
            email=payload.get("email") or None,
            is_anonymous=bool(payload.get("is_anonymous", False)),
        )

        return await call_next(request)
