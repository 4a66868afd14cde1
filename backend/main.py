"""
Live Orders FastAPI application.

Entry point for the API server:
    uvicorn backend.main:app
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend import db
from backend.config import settings
from backend.deps import Services
from backend.repos.order_repo import OrderRepo
from backend.repos.order_store import MemoryOrderStore, OrderStore
from backend.routes import orders as order_routes
from backend.services.change_notifier import ChangeNotifier
from backend.services.filter_staging import FilterStagingCache
from backend.services.order_generator import insert_random_orders, seed_if_empty

logger = logging.getLogger(__name__)


async def cleanup_task(staging: FilterStagingCache, interval_seconds: float):
    """
    Background task to sweep expired staged filters.

    Lookups already evict lazily; this bounds memory for tokens that are
    staged but never read again.
    """
    while True:
        try:
            removed = staging.cleanup_expired()
            if removed > 0:
                logger.info("staging: swept %d expired filters", removed)
        except Exception as e:
            logger.error("staging: error in cleanup task: %s", e)

        await asyncio.sleep(interval_seconds)


async def _stop(task: asyncio.Task, name: str) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        logger.info("%s stopped", name)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.

    Handles startup and shutdown logic:
    - Initialize database pool (Postgres mode only)
    - Seed the order store if empty
    - Start staging sweep and random order insertion
    - Close database pool on shutdown
    """
    services: Services = app.state.services

    # Startup
    if isinstance(services.store, OrderRepo):
        await db.init_pool()
        logger.info("Database pool initialized")

    await seed_if_empty(services.store, settings.SEED_ORDER_COUNT)

    background = [
        (
            asyncio.create_task(cleanup_task(services.staging, settings.STAGING_SWEEP_INTERVAL_SECONDS)),
            "Staging cleanup task",
        )
    ]
    if settings.RANDOM_INSERT_INTERVAL_SECONDS > 0:
        background.append(
            (
                asyncio.create_task(insert_random_orders(services.store, settings.RANDOM_INSERT_INTERVAL_SECONDS)),
                "Random order insertion",
            )
        )
    logger.info("Background tasks started: %s", ", ".join(name for _, name in background))

    yield

    # Shutdown
    for task, name in background:
        await _stop(task, name)

    if isinstance(services.store, OrderRepo):
        await db.close_pool()
        logger.info("Database pool closed")


def create_app(
    store: OrderStore | None = None,
    notifier: ChangeNotifier | None = None,
    staging: FilterStagingCache | None = None,
    keepalive_seconds: float = settings.SSE_KEEPALIVE_SECONDS,
) -> FastAPI:
    """
    Build the application with its own notifier, staging cache and store.

    Without an explicit store, DATABASE_URL selects Postgres; otherwise
    orders live in memory for the life of the process.
    """
    if store is not None:
        notifier = store.notifier
    else:
        notifier = notifier if notifier is not None else ChangeNotifier()
        store = OrderRepo(notifier) if settings.uses_postgres else MemoryOrderStore(notifier)

    application = FastAPI(
        title="Live Orders",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    application.state.services = Services(
        notifier=notifier,
        store=store,
        staging=staging if staging is not None else FilterStagingCache(),
        keepalive_seconds=keepalive_seconds,
    )

    # Register routes
    application.include_router(order_routes.router)

    @application.get("/health")
    async def health():
        """Health check endpoint for uptime monitoring."""
        return {"status": "ok"}

    return application


logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()
