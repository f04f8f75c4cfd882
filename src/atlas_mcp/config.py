from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

DEFAULT_BASE_URL = "https://atlas.microsoft.com"

T = TypeVar("T")


class ConfigurationError(Exception):
    """Raised when the process cannot be configured to serve any request."""


@dataclass(frozen=True)
class Settings:
    subscription_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 15.0
    max_retries: int = 2
    backoff_seconds: float = 1.0
    batch_concurrency: int = 10


def _env_number(name: str, default: T, cast: Callable[[str], T]) -> T:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def load_settings(subscription_key: Optional[str] = None) -> Settings:
    key = (subscription_key or os.getenv("AZURE_MAPS_SUBSCRIPTION_KEY") or "").strip()
    if not key:
        raise ConfigurationError("AZURE_MAPS_SUBSCRIPTION_KEY is not set")

    settings = Settings(
        subscription_key=key,
        base_url=(os.getenv("AZURE_MAPS_BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
        timeout=_env_number("ATLAS_MCP_TIMEOUT", 15.0, float),
        max_retries=_env_number("ATLAS_MCP_MAX_RETRIES", 2, int),
        backoff_seconds=_env_number("ATLAS_MCP_BACKOFF_SECONDS", 1.0, float),
        batch_concurrency=_env_number("ATLAS_MCP_BATCH_CONCURRENCY", 10, int),
    )
    if settings.timeout <= 0:
        raise ConfigurationError("ATLAS_MCP_TIMEOUT must be positive")
    if settings.max_retries < 0:
        raise ConfigurationError("ATLAS_MCP_MAX_RETRIES must not be negative")
    if settings.batch_concurrency < 1:
        raise ConfigurationError("ATLAS_MCP_BATCH_CONCURRENCY must be at least 1")
    return settings
