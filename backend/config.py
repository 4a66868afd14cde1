"""
Live Orders configuration: all environment variables in one place.

Read from environment at runtime.
"""

from __future__ import annotations

import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Settings:
    """Application settings from environment variables."""

    # Database (empty = in-memory order store)
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "")

    # Staged filters
    STAGING_TTL_MS: int = 5 * 60 * 1000  # fixed by the wire contract
    STAGING_SWEEP_INTERVAL_SECONDS: int = _int_env("STAGING_SWEEP_INTERVAL_SECONDS", 60)

    # Streams
    DEFAULT_WINDOW_SIZE: int = _int_env("DEFAULT_WINDOW_SIZE", 30)
    MAX_WINDOW_SIZE: int = _int_env("MAX_WINDOW_SIZE", 500)
    SSE_KEEPALIVE_SECONDS: int = _int_env("SSE_KEEPALIVE_SECONDS", 15)

    # Demo data
    SEED_ORDER_COUNT: int = _int_env("SEED_ORDER_COUNT", 100)
    RANDOM_INSERT_INTERVAL_SECONDS: int = _int_env("RANDOM_INSERT_INTERVAL_SECONDS", 5)  # 0 disables

    # Application
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

    @property
    def uses_postgres(self) -> bool:
        return bool(self.DATABASE_URL)


# Singleton instance
settings = Settings()

if settings.DEFAULT_WINDOW_SIZE <= 0:
    raise RuntimeError("DEFAULT_WINDOW_SIZE must be positive")
if settings.MAX_WINDOW_SIZE < settings.DEFAULT_WINDOW_SIZE:
    raise RuntimeError("MAX_WINDOW_SIZE must be >= DEFAULT_WINDOW_SIZE")
