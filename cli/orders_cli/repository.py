"""
Live order flows that follow a changeable filter.

Hides token staging from callers: the first stream to need a token stages
the filter (concurrent callers wait for that one request), a rejected
token is restaged and the stream retried once, and changing the filter
cancels every stream opened for the old one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from typing import Any, TypeVar

from orders_cli.client import OrdersApiClient, SessionRejected
from orders_cli.models import Order, OrderFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")

StreamOpener = Callable[[str], AsyncIterator[T]]


class FilterSession:
    """Cached staging token for one filter value."""

    def __init__(self, client: OrdersApiClient, order_filter: OrderFilter):
        self.client = client
        self.filter = order_filter
        self.retired = asyncio.Event()
        self._token: str | None = None
        self._lock = asyncio.Lock()

    async def token(self) -> str:
        """Return the cached token, staging the filter if there is none."""
        async with self._lock:
            if self._token is None:
                self._token = await self.client.stage_filters(self.filter)
                logger.debug("repository: staged filter %s", self.filter.to_json())
            return self._token

    async def invalidate(self, rejected: str) -> None:
        """Forget `rejected` unless another stream already replaced it."""
        async with self._lock:
            if self._token == rejected:
                self._token = None

    def retire(self) -> None:
        self._token = None
        self.retired.set()


class OrdersSyncRepository:
    """
    Continuous count and window flows for the current filter.

    Usage:
        repo = OrdersSyncRepository(OrdersApiClient("http://localhost:8000"))
        repo.set_filter(OrderFilter(status=OrderStatus.PAID))
        async for total in repo.count_updates():
            ...
    """

    def __init__(self, client: OrdersApiClient, order_filter: OrderFilter | None = None):
        self.client = client
        self._session = FilterSession(client, order_filter or OrderFilter())

    @property
    def filter(self) -> OrderFilter:
        return self._session.filter

    @property
    def session(self) -> FilterSession:
        return self._session

    def set_filter(self, order_filter: OrderFilter) -> None:
        """
        Switch to a new filter.

        Drops the cached token and makes every open flow cancel its stream
        and reopen against the new filter. Setting an equal filter is a no-op.
        """
        if order_filter == self._session.filter:
            return
        previous = self._session
        self._session = FilterSession(self.client, order_filter)
        previous.retire()
        logger.info("repository: filter changed to %s", order_filter.to_json())

    def count_updates(self) -> AsyncIterator[int]:
        """Live count of orders matching the current filter."""
        return self._follow_filter(self.client.count_stream)

    def window_updates(self, position: int, size: int) -> AsyncIterator[dict[int, Order]]:
        """Live window [position, position + size) for the current filter."""
        return self._follow_filter(lambda token: self.client.window_stream(position, size, token))

    async def _with_restage(self, session: FilterSession, open_stream: StreamOpener) -> AsyncIterator[Any]:
        token = await session.token()
        try:
            async with aclosing(open_stream(token)) as items:
                async for item in items:
                    yield item
            return
        except SessionRejected:
            logger.warning("repository: session token rejected, restaging once")

        await session.invalidate(token)
        token = await session.token()
        # A second rejection propagates to the caller
        async with aclosing(open_stream(token)) as items:
            async for item in items:
                yield item

    async def _session_items(self, session: FilterSession, open_stream: StreamOpener) -> AsyncIterator[Any]:
        """Items from one stream until it ends, fails, or the session retires."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=1)

        async def pump() -> None:
            try:
                async with aclosing(self._with_restage(session, open_stream)) as items:
                    async for item in items:
                        await queue.put((True, item))
            except Exception as e:
                await queue.put((False, e))
            else:
                await queue.put((False, None))

        pump_task = asyncio.create_task(pump())
        retired_wait = asyncio.create_task(session.retired.wait())
        getter: asyncio.Task | None = None

        try:
            while True:
                getter = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait({getter, retired_wait}, return_when=asyncio.FIRST_COMPLETED)
                if retired_wait in done:
                    return

                is_item, value = getter.result()
                getter = None
                if not is_item:
                    if value is None:
                        return
                    raise value
                yield value
        finally:
            tasks = [task for task in (getter, pump_task, retired_wait) if task is not None]
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _follow_filter(self, open_stream: StreamOpener) -> AsyncIterator[Any]:
        while True:
            session = self._session
            async with aclosing(self._session_items(session, open_stream)) as items:
                async for item in items:
                    if session.retired.is_set():
                        break
                    yield item

            if not session.retired.is_set():
                # The server ended the stream for the current filter
                return
