"""Application settings via Pydantic BaseSettings."""

from __future__ import annotations

import warnings
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings

DEMO_BUSINESS_ID = "00000000-0000-0000-0000-000000000001"


class Settings(BaseSettings):
    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # App
    secret_key: str = "change-me-in-production"
    debug: bool = False
    log_level: str = "INFO"
    allowed_origins: list[str] = ["http://localhost:8000"]

    # Identity provider
    identity_mode: Literal["memory", "supabase"] = "memory"
    supabase_url: str | None = None
    supabase_anon_key: str | None = None

    # Business backend (defaults to the Supabase REST endpoint when unset)
    backend_url: str | None = None

    # Tenant resolution
    membership_timeout_seconds: float = 3.0
    membership_retry_attempts: int = 2  # one bounded retry
    membership_retry_delay_ms: int = 200
    guard_wait_seconds: float = 0.5
    selection_store_path: str | None = None

    # Browser sessions
    session_max_age: int = 86400
    memory_session_ttl_seconds: float = 3600.0  # memory mode only
    client_cookie_max_age: int = 60 * 60 * 24 * 365

    # Feature flags
    marketplace_enabled: bool = False
    seed_demo_data: bool = True  # memory mode only

    @property
    def effective_backend_url(self) -> str | None:
        return self.backend_url or self.supabase_url


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    settings = Settings()
    if settings.secret_key == "change-me-in-production":  # nosec B105
        warnings.warn(
            "SECRET_KEY is using the insecure default. "
            "Set SECRET_KEY environment variable for production.",
            UserWarning,
            stacklevel=2,
        )
    if settings.identity_mode == "supabase" and not (
        settings.supabase_url and settings.supabase_anon_key
    ):
        msg = "IDENTITY_MODE=supabase requires SUPABASE_URL and SUPABASE_ANON_KEY"
        raise ValueError(msg)
    return settings
