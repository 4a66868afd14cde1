"""HTTP client for the Live Orders API."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any

import httpx

from orders_cli.models import Order, OrderFilter

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"

# Streams stay open indefinitely between updates; only connecting may time out.
STREAM_TIMEOUT = httpx.Timeout(30.0, read=None, write=30.0, pool=30.0)


class SessionRejected(Exception):
    """The server answered 403: the staged token is unknown or expired."""


class StreamFailed(Exception):
    """The server reported an error on an open stream and closed it."""


@dataclass(frozen=True)
class ServerEvent:
    event: str
    data: str
    id: str | None = None


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[ServerEvent]:
    """
    Parse text/event-stream lines into events.

    Comment lines (keep-alives) and unknown fields are skipped.
    """
    event_type = "message"
    data_lines: list[str] = []
    last_id: str | None = None

    async for raw in lines:
        line = raw.rstrip("\r\n")

        if not line:
            if data_lines:
                yield ServerEvent(event=event_type, data="\n".join(data_lines), id=last_id)
            event_type = "message"
            data_lines = []
            continue

        if line.startswith(":"):
            continue

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "data":
            data_lines.append(value)
        elif field == "event":
            event_type = value
        elif field == "id":
            last_id = value


def parse_count(data: str) -> int:
    count = int(data)
    if count < 0:
        raise ValueError(f"negative count {count}")
    return count


def parse_window(data: str) -> dict[int, Order]:
    payload = json.loads(data)
    if not isinstance(payload, dict):
        raise ValueError("window payload is not an object")
    return {int(position): Order.model_validate(order) for position, order in payload.items()}


class OrdersApiClient:
    """Async HTTP client for the Live Orders API."""

    def __init__(self, api_url: str, http: httpx.AsyncClient | None = None):
        self.api_url = api_url.rstrip("/")
        self.http = http or httpx.AsyncClient(timeout=30.0)

    def _url(self, path: str) -> str:
        return f"{self.api_url}{path}"

    async def stage_filters(self, order_filter: OrderFilter) -> str:
        """
        Stage a filter for the stream endpoints.

        Returns the opaque token to send as X-Request-Id.
        """
        res = await self.http.post(self._url("/orders/sse"), json=order_filter.to_json())
        res.raise_for_status()
        token = res.text.strip()
        if not token:
            raise ValueError("Server returned an empty staging token")
        return token

    async def _events(self, path: str, token: str, params: dict[str, Any] | None = None) -> AsyncIterator[ServerEvent]:
        async with self.http.stream(
            "GET",
            self._url(path),
            params=params,
            headers={REQUEST_ID_HEADER: token, "Accept": "text/event-stream"},
            timeout=STREAM_TIMEOUT,
        ) as response:
            if response.status_code == httpx.codes.FORBIDDEN:
                await response.aread()
                raise SessionRejected(response.text or "Session token rejected")
            response.raise_for_status()

            async for event in iter_sse(response.aiter_lines()):
                if event.event == "error":
                    raise StreamFailed(event.data)
                yield event

    async def count_stream(self, token: str) -> AsyncIterator[int]:
        """
        Stream the live count for a staged filter.

        Raises SessionRejected before the first value if the token is
        rejected. Unparseable events are dropped.
        """
        async with aclosing(self._events("/orders/sse/count", token)) as events:
            async for event in events:
                try:
                    count = parse_count(event.data)
                except ValueError:
                    logger.warning("client: dropping malformed count event: %r", event.data[:200])
                    continue
                yield count

    async def window_stream(self, position: int, size: int, token: str) -> AsyncIterator[dict[int, Order]]:
        """
        Stream the live window [position, position + size) for a staged filter.

        Yields mappings of absolute position to order. Unparseable events
        are dropped.
        """
        params = {"position": position, "size": size}
        async with aclosing(self._events("/orders/sse", token, params=params)) as events:
            async for event in events:
                try:
                    window = parse_window(event.data)
                except ValueError:
                    logger.warning("client: dropping malformed window event: %r", event.data[:200])
                    continue
                yield window

    async def create_order(self, order: dict[str, Any]) -> Order:
        """Insert an order. Returns the created order."""
        res = await self.http.post(self._url("/orders"), json=order)
        res.raise_for_status()
        return Order.model_validate(res.json())

    async def insert_random_order(self) -> Order:
        """Ask the server to insert a random order."""
        res = await self.http.post(self._url("/orders/random"))
        res.raise_for_status()
        return Order.model_validate(res.json())

    async def aclose(self) -> None:
        """Close client."""
        await self.http.aclose()
