"""
Tests for backend/services/stream_session.py

Sessions are driven directly through events(); the HTTP layer is covered
in test_order_routes.py and test_end_to_end.py.
"""

from __future__ import annotations

import asyncio
import json

import pytest

from backend.models.order import Order, OrderFilter, OrderStatus
from backend.repos.order_store import MemoryOrderStore
from backend.services.query_reexecutor import CountQuery, WindowQuery
from backend.services.stream_session import (
    KEEPALIVE_FRAME,
    SessionRejected,
    SessionState,
    StreamSession,
    encode_result,
    format_event,
)


class BrokenStore(MemoryOrderStore):
    async def count(self, order_filter):
        raise ConnectionError("database went away")


def make_session(staging, store, query=None, keepalive_seconds=0.2) -> StreamSession:
    return StreamSession(staging, store.notifier, store, query or CountQuery(), keepalive_seconds=keepalive_seconds)


async def next_frame(events, timeout: float = 2.0) -> str:
    return await asyncio.wait_for(events.__anext__(), timeout)


# ---------------------------------------------------------------------------
# Frame encoding
# ---------------------------------------------------------------------------


class TestFormatEvent:
    def test_data_with_id(self):
        assert format_event("7", event_id=3) == "id: 3\ndata: 7\n\n"

    def test_named_event(self):
        assert format_event("boom", event="error") == "event: error\ndata: boom\n\n"

    def test_multiline_data_is_split(self):
        assert format_event("a\nb") == "data: a\ndata: b\n\n"

    def test_encode_count(self):
        assert encode_result(42) == "42"

    def test_encode_window_uses_string_positions(self, order_factory):
        order = Order(id=9, **order_factory(amount=12.5).model_dump())
        decoded = json.loads(encode_result({30: order}))
        assert list(decoded) == ["30"]
        assert decoded["30"]["id"] == 9
        assert decoded["30"]["amount"] == 12.5


# ---------------------------------------------------------------------------
# Opening
# ---------------------------------------------------------------------------


class TestOpen:
    def test_missing_token_is_rejected(self, staging, store):
        session = make_session(staging, store)
        with pytest.raises(SessionRejected):
            session.open(None)
        assert session.state is SessionState.CLOSED

    def test_unknown_token_is_rejected(self, staging, store):
        session = make_session(staging, store)
        with pytest.raises(SessionRejected, match="Expired or unknown request id"):
            session.open("no-such-token")
        assert session.state is SessionState.CLOSED

    def test_expired_token_is_rejected(self, staging, store, clock):
        token = staging.stage(OrderFilter())
        clock.advance(staging.ttl_ms + 1)
        session = make_session(staging, store)
        with pytest.raises(SessionRejected):
            session.open(token)

    def test_valid_token_starts_streaming(self, staging, store):
        session = make_session(staging, store)
        session.open(staging.stage(OrderFilter()))
        assert session.state is SessionState.STREAMING

    def test_cannot_open_twice(self, staging, store):
        token = staging.stage(OrderFilter())
        session = make_session(staging, store)
        session.open(token)
        with pytest.raises(RuntimeError):
            session.open(token)

    def test_count_and_window_sessions_share_a_token(self, staging, store):
        token = staging.stage(OrderFilter(status=OrderStatus.PAID))
        count = make_session(staging, store, CountQuery())
        window = make_session(staging, store, WindowQuery(position=0, size=10))
        count.open(token)
        window.open(token)
        assert (count.kind, window.kind) == ("count", "window")

    @pytest.mark.asyncio
    async def test_events_before_open_fail(self, staging, store):
        session = make_session(staging, store)
        with pytest.raises(RuntimeError):
            await session.events().__anext__()


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_count_stream_sends_current_value_then_updates(staging, store, order_factory):
    await store.create_many([order_factory(status=OrderStatus.PAID) for _ in range(7)])
    session = make_session(staging, store)
    session.open(staging.stage(OrderFilter(status=OrderStatus.PAID)))
    events = session.events()

    assert await next_frame(events) == "id: 1\ndata: 7\n\n"

    await store.create(order_factory(status=OrderStatus.PAID))
    assert await next_frame(events) == "id: 2\ndata: 8\n\n"

    await events.aclose()


@pytest.mark.asyncio
async def test_unchanged_result_is_not_resent(staging, store, order_factory):
    await store.create_many([order_factory(status=OrderStatus.PAID) for _ in range(7)])
    session = make_session(staging, store)
    session.open(staging.stage(OrderFilter(status=OrderStatus.PAID)))
    events = session.events()
    await next_frame(events)

    # Bumps the version but leaves the PAID count at 7
    await store.create(order_factory(status=OrderStatus.CANCELLED))

    assert await next_frame(events) == KEEPALIVE_FRAME
    await events.aclose()


@pytest.mark.asyncio
async def test_idle_stream_sends_keepalives(staging, store):
    session = make_session(staging, store, keepalive_seconds=0.05)
    session.open(staging.stage(OrderFilter()))
    events = session.events()

    assert await next_frame(events) == "id: 0\ndata: 0\n\n"
    assert await next_frame(events) == KEEPALIVE_FRAME
    assert await next_frame(events) == KEEPALIVE_FRAME
    await events.aclose()


@pytest.mark.asyncio
async def test_window_stream_truncates_at_end(staging, store, order_factory):
    await store.create_many([order_factory(amount=float(n)) for n in range(35)])
    session = make_session(staging, store, WindowQuery(position=30, size=10))
    session.open(staging.stage(OrderFilter()))
    events = session.events()

    frame = await next_frame(events)
    id_line, data_line, _, _ = frame.split("\n")
    assert id_line == "id: 1"
    window = json.loads(data_line.removeprefix("data: "))
    assert sorted(window, key=int) == ["30", "31", "32", "33", "34"]
    assert [window[key]["id"] for key in ("30", "34")] == [31, 35]

    await events.aclose()


@pytest.mark.asyncio
async def test_window_reflects_inserts_inside_it(staging, store, order_factory):
    await store.create_many([order_factory() for _ in range(3)])
    session = make_session(staging, store, WindowQuery(position=0, size=5))
    session.open(staging.stage(OrderFilter()))
    events = session.events()

    first = json.loads((await next_frame(events)).split("\n")[1].removeprefix("data: "))
    assert sorted(first, key=int) == ["0", "1", "2"]

    await store.create(order_factory(customer="Mia Davis"))
    second = json.loads((await next_frame(events)).split("\n")[1].removeprefix("data: "))
    assert second["3"]["customer"] == "Mia Davis"

    await events.aclose()


@pytest.mark.asyncio
async def test_recompute_failure_sends_error_event_and_ends(staging, notifier):
    store = BrokenStore(notifier)
    session = make_session(staging, store)
    session.open(staging.stage(OrderFilter()))
    events = session.events()

    assert await next_frame(events) == "event: error\ndata: recompute failed\n\n"
    with pytest.raises(StopAsyncIteration):
        await next_frame(events)
    assert session.state is SessionState.CLOSED
    assert notifier.subscriber_count == 0


@pytest.mark.asyncio
async def test_closing_the_stream_unsubscribes(staging, store, notifier):
    session = make_session(staging, store)
    session.open(staging.stage(OrderFilter()))
    events = session.events()
    await next_frame(events)
    assert notifier.subscriber_count == 1

    await events.aclose()

    assert notifier.subscriber_count == 0
    assert session.state is SessionState.CLOSED


@pytest.mark.asyncio
async def test_token_expiry_does_not_end_an_open_stream(staging, store, clock, order_factory):
    session = make_session(staging, store)
    session.open(staging.stage(OrderFilter()))
    events = session.events()
    await next_frame(events)

    clock.advance(staging.ttl_ms * 2)
    await store.create(order_factory())

    assert await next_frame(events) == "id: 1\ndata: 1\n\n"
    await events.aclose()
