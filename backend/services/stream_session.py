"""
Server side of one SSE stream: resolve the token, then stream results.

A session moves RESOLVING → STREAMING → CLOSED. A count stream and a window
stream for the same client are two independent sessions that resolve the
same token on their own.

Wire format (text/event-stream):
    id: <version>
    data: <payload>

Count payloads are decimal integers. Window payloads are JSON objects
mapping decimal absolute positions to orders. A recomputation failure is
reported as a single `event: error` frame, after which the stream ends.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from enum import Enum

from backend.config import settings
from backend.repos.order_store import OrderStore
from backend.services.change_notifier import ChangeNotifier
from backend.services.filter_staging import FilterStagingCache
from backend.services.query_reexecutor import (
    QueryReexecutor,
    QueryResult,
    RecomputeFailure,
    StreamQuery,
    WindowQuery,
)

logger = logging.getLogger(__name__)

KEEPALIVE_FRAME = ": keepalive\n\n"


class SessionRejected(Exception):
    """The request carried no token, or one that is unknown or expired."""


class SessionState(str, Enum):
    RESOLVING = "resolving"
    STREAMING = "streaming"
    CLOSED = "closed"


def encode_result(result: QueryResult) -> str:
    """Serialize a count or window result into an SSE data payload."""
    if isinstance(result, int):
        return str(result)
    return json.dumps({str(position): order.model_dump(mode="json") for position, order in result.items()})


def format_event(data: str, event: str | None = None, event_id: int | None = None) -> str:
    """Build one SSE frame. Multi-line data is split across data: lines."""
    lines = []
    if event is not None:
        lines.append(f"event: {event}")
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.extend(f"data: {line}" for line in data.split("\n"))
    return "\n".join(lines) + "\n\n"


class StreamSession:
    """Lifecycle of one count or window stream connection."""

    def __init__(
        self,
        staging: FilterStagingCache,
        notifier: ChangeNotifier,
        store: OrderStore,
        query: StreamQuery,
        keepalive_seconds: float = settings.SSE_KEEPALIVE_SECONDS,
    ):
        self.staging = staging
        self.notifier = notifier
        self.store = store
        self.query = query
        self.keepalive_seconds = keepalive_seconds
        self.state = SessionState.RESOLVING
        self._reexecutor: QueryReexecutor | None = None

    @property
    def kind(self) -> str:
        return "window" if isinstance(self.query, WindowQuery) else "count"

    def open(self, token: str | None) -> None:
        """
        Resolve the staged filter for this session.

        Raises:
            SessionRejected: token missing, unknown or expired. The session
                is CLOSED and must not be streamed.
        """
        if self.state is not SessionState.RESOLVING:
            raise RuntimeError(f"Cannot open a session in state {self.state.value}")

        order_filter = self.staging.resolve(token) if token else None
        if order_filter is None:
            self.state = SessionState.CLOSED
            logger.info("stream: rejected %s session (missing, unknown or expired token)", self.kind)
            raise SessionRejected("Expired or unknown request id")

        self._reexecutor = QueryReexecutor(self.store, order_filter, self.query)
        self.state = SessionState.STREAMING

    async def events(self) -> AsyncIterator[str]:
        """
        SSE frames for this session until the client goes away.

        Sends the current result immediately, then a new one after every
        version change whose payload differs from the last one sent.
        """
        if self.state is not SessionState.STREAMING or self._reexecutor is None:
            raise RuntimeError("Session must be opened before streaming")

        subscription = self.notifier.subscribe()
        results = self._reexecutor.results(subscription)
        last_payload: str | None = None
        pending: asyncio.Future | None = None
        logger.info("stream: %s session streaming (query=%s)", self.kind, self.query)

        try:
            while True:
                if pending is None:
                    pending = asyncio.ensure_future(results.__anext__())

                done, _ = await asyncio.wait({pending}, timeout=self.keepalive_seconds)
                if not done:
                    yield KEEPALIVE_FRAME
                    continue

                task, pending = pending, None
                try:
                    version, result = task.result()
                except StopAsyncIteration:
                    break
                except RecomputeFailure as e:
                    logger.error("stream: closing %s session after recompute failure: %s", self.kind, e)
                    yield format_event("recompute failed", event="error")
                    break

                payload = encode_result(result)
                if payload == last_payload:
                    continue
                last_payload = payload
                yield format_event(payload, event_id=version)
        finally:
            subscription.close()
            self.state = SessionState.CLOSED
            logger.info("stream: %s session closed", self.kind)
            if pending is not None and not pending.done():
                pending.cancel()
                await asyncio.gather(pending, return_exceptions=True)
            await results.aclose()
