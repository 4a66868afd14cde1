"""
Pytest configuration and fixtures for Live Orders tests.
"""

from __future__ import annotations

import asyncio
import socket
import threading
import time
from datetime import date

import httpx
import pytest
import pytest_asyncio
import uvicorn

from backend.main import create_app
from backend.models.order import CreateOrderRequest, OrderStatus
from backend.repos.order_store import MemoryOrderStore
from backend.services.change_notifier import ChangeNotifier
from backend.services.filter_staging import FilterStagingCache


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: float = 1_000_000.0):
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


class Collector:
    """Drains an async iterator in the background and records what it yields."""

    def __init__(self, source):
        self.values: list = []
        self.error: BaseException | None = None
        self._changed = asyncio.Event()
        self.task = asyncio.create_task(self._run(source))

    async def _run(self, source):
        try:
            async for value in source:
                self.values.append(value)
                self._changed.set()
        except Exception as e:
            self.error = e
        finally:
            self._changed.set()

    @property
    def finished(self) -> bool:
        return self.task.done()

    async def wait_until(self, predicate, timeout: float = 5.0):
        async def _wait():
            while not predicate(self.values):
                if self.error is not None:
                    raise self.error
                if self.task.done():
                    raise AssertionError(f"source ended early with values {self.values!r}")
                self._changed.clear()
                await self._changed.wait()

        await asyncio.wait_for(_wait(), timeout)
        return self.values

    async def wait_finished(self, timeout: float = 5.0):
        await asyncio.wait_for(asyncio.shield(self.task), timeout)

    async def stop(self):
        self.task.cancel()
        await asyncio.gather(self.task, return_exceptions=True)


def make_order(
    status: OrderStatus = OrderStatus.NEW,
    customer: str = "Olivia Smith",
    delivery_address: str = "City 1, Street 1",
    order_date: date = date(2025, 9, 13),
    amount: float = 100.0,
) -> CreateOrderRequest:
    return CreateOrderRequest(
        order_date=order_date,
        customer=customer,
        delivery_address=delivery_address,
        status=status,
        amount=amount,
    )


@pytest.fixture
def order_factory():
    """Factory for CreateOrderRequest with sensible defaults."""
    return make_order


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return ChangeNotifier()


@pytest.fixture
def store(notifier):
    return MemoryOrderStore(notifier)


@pytest.fixture
def staging(clock):
    return FilterStagingCache(clock=clock)


@pytest.fixture
def app(store, staging):
    """App wired to the in-memory store and fake-clock staging cache."""
    return create_app(store=store, staging=staging, keepalive_seconds=0.2)


@pytest_asyncio.fixture
async def async_client(app):
    """Async HTTP client against the ASGI app."""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


@pytest_asyncio.fixture
async def collect():
    """Start Collectors that are stopped when the test ends."""
    collectors: list[Collector] = []

    def start(source) -> Collector:
        collector = Collector(source)
        collectors.append(collector)
        return collector

    yield start

    for collector in collectors:
        await collector.stop()


class _Server(uvicorn.Server):
    def install_signal_handlers(self) -> None:
        pass


@pytest.fixture
def live_server(store, staging):
    """
    Real uvicorn server on a background thread, for streaming over TCP.

    Yields the base URL. The lifespan is off: no seeding, no random inserts.
    """
    app = create_app(store=store, staging=staging, keepalive_seconds=0.2)

    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]

    server = _Server(uvicorn.Config(app, lifespan="off", log_level="warning"))
    thread = threading.Thread(target=server.run, kwargs={"sockets": [sock]}, daemon=True)
    thread.start()

    deadline = time.monotonic() + 10
    while not server.started:
        if time.monotonic() > deadline or not thread.is_alive():
            raise RuntimeError("live server did not start")
        time.sleep(0.01)

    yield f"http://127.0.0.1:{port}"

    server.should_exit = True
    server.force_exit = True
    thread.join(timeout=5)
    sock.close()
