"""
Per-app service container and the FastAPI dependency that exposes it.

The notifier, staging cache and store are created once per app by
create_app() and handed to routes through get_services(); nothing here is
a module-level global.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from fastapi import Request

from backend.config import settings
from backend.repos.order_store import OrderStore
from backend.services.change_notifier import ChangeNotifier
from backend.services.filter_staging import FilterStagingCache


@dataclass
class Services:
    notifier: ChangeNotifier
    store: OrderStore
    staging: FilterStagingCache = field(default_factory=FilterStagingCache)
    keepalive_seconds: float = settings.SSE_KEEPALIVE_SECONDS
    default_window_size: int = settings.DEFAULT_WINDOW_SIZE
    max_window_size: int = settings.MAX_WINDOW_SIZE


def get_services(request: Request) -> Services:
    """Dependency: the Services instance attached to the running app."""
    return request.app.state.services
