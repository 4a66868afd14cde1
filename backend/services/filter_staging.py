"""
Short-lived staging of stream filters.

SSE requests are body-less GETs, so the client first POSTs its filter and
receives an opaque token, then opens its streams with that token in the
X-Request-Id header. Entries expire STAGING_TTL_MS after staging.
"""

from __future__ import annotations

import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from backend.config import settings
from backend.models.order import OrderFilter


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass(frozen=True)
class StagedFilter:
    token: str
    filter: OrderFilter
    created_at_ms: float


class FilterStagingCache:
    """
    Token → filter mapping with a fixed time-to-live.

    Expired entries are evicted lazily by resolve(); cleanup_expired()
    sweeps the rest and is run periodically by the app.
    """

    def __init__(
        self,
        ttl_ms: int = settings.STAGING_TTL_MS,
        clock: Callable[[], float] = _monotonic_ms,
    ):
        self._ttl_ms = ttl_ms
        self._clock = clock
        self._entries: dict[str, StagedFilter] = {}
        self._lock = threading.Lock()

    @property
    def ttl_ms(self) -> int:
        return self._ttl_ms

    def __len__(self) -> int:
        return len(self._entries)

    def stage(self, order_filter: OrderFilter) -> str:
        """Store a filter and return a fresh token referencing it."""
        token = secrets.token_urlsafe(24)
        entry = StagedFilter(token=token, filter=order_filter, created_at_ms=self._clock())
        with self._lock:
            self._entries[token] = entry
        return token

    def resolve(self, token: str) -> OrderFilter | None:
        """
        Look up a staged filter.

        Returns None for unknown and expired tokens alike.
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                return None
            if now - entry.created_at_ms > self._ttl_ms:
                del self._entries[token]
                return None
            return entry.filter

    def cleanup_expired(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        with self._lock:
            expired = [token for token, entry in self._entries.items() if now - entry.created_at_ms > self._ttl_ms]
            for token in expired:
                del self._entries[token]
        return len(expired)
