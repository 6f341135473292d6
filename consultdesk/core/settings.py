"""Environment-driven service configuration."""

from __future__ import annotations

import dataclasses
import os
from functools import lru_cache

DEFAULT_BOOKINGS_API_URL = "https://graph.microsoft.com/v1.0/solutions"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_str(name: str) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


@dataclasses.dataclass(frozen=True)
class Settings:
    """Runtime configuration for the consult service."""

    database_url: str | None = None
    document_store_backend: str = "memory"
    document_store_schema: str = "consultdesk"
    document_query_page_size: int = 100
    bookings_api_url: str = DEFAULT_BOOKINGS_API_URL
    bookings_api_token: str | None = None
    bookings_timeout_seconds: float = 30.0
    notify_webhook_url: str | None = None
    notify_timeout_seconds: float = 10.0
    auth_token_secret: str | None = None
    auth_token_issuer: str | None = None
    auth_token_audience: str | None = None
    auth_token_algorithm: str = "HS256"
    create_request_rate_limit: str = "20/minute"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from the environment."""

    database_url = _env_str("DATABASE_URL")
    backend = (_env_str("DOCUMENT_STORE_BACKEND") or "").lower()
    if not backend:
        backend = "postgres" if database_url else "memory"
    if backend not in {"postgres", "memory"}:
        raise RuntimeError(f"Unsupported DOCUMENT_STORE_BACKEND: {backend!r}")
    if backend == "postgres" and not database_url:
        raise RuntimeError("DATABASE_URL must be set for the postgres document store.")
    return Settings(
        database_url=database_url,
        document_store_backend=backend,
        document_store_schema=_env_str("DOCUMENT_STORE_SCHEMA") or "consultdesk",
        document_query_page_size=_env_int("DOCUMENT_QUERY_PAGE_SIZE", 100),
        bookings_api_url=_env_str("BOOKINGS_API_URL") or DEFAULT_BOOKINGS_API_URL,
        bookings_api_token=_env_str("BOOKINGS_API_TOKEN"),
        bookings_timeout_seconds=_env_float("BOOKINGS_TIMEOUT_SECONDS", 30.0),
        notify_webhook_url=_env_str("NOTIFY_WEBHOOK_URL"),
        notify_timeout_seconds=_env_float("NOTIFY_TIMEOUT_SECONDS", 10.0),
        auth_token_secret=_env_str("AUTH_TOKEN_SECRET"),
        auth_token_issuer=_env_str("AUTH_TOKEN_ISSUER"),
        auth_token_audience=_env_str("AUTH_TOKEN_AUDIENCE"),
        auth_token_algorithm=_env_str("AUTH_TOKEN_ALGORITHM") or "HS256",
        create_request_rate_limit=_env_str("CREATE_REQUEST_RATE_LIMIT") or "20/minute",
    )


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_settings.cache_clear()


__all__ = ["Settings", "get_settings", "reset_settings_cache"]
