"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "CycleTrack"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Storage ---
    store_backend: str = "postgres"  # postgres | memory
    database_url: str = ""  # Supabase postgres connection string for asyncpg
    db_pool_min_size: int = 2
    db_pool_max_size: int = 10
    db_command_timeout: int = 30

    # --- Auth (Supabase Auth JWTs) ---
    jwt_jwks_url: str = ""  # asymmetric signing keys, e.g. <supabase_url>/auth/v1/.well-known/jwks.json
    jwt_secret: str = ""  # legacy HS256 shared secret; used when no JWKS URL is set
    jwt_algorithms: list[str] = ["RS256", "ES256"]
    jwt_audience: str | None = "authenticated"

    # --- Cycle defaults ---
    default_cycle_length: int = 28
    default_period_length: int = 5
    record_timezone: str = "UTC"  # local midnight for PeriodRecord.timestamp

    # --- Rate Limiting ---
    rate_limit_per_minute: int = 60

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "CYCLETRACK_"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
