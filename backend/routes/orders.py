"""
Order routes: filter staging, live count and window streams, inserts.

Streams are SSE GETs and cannot carry a body, so clients stage their
filter first:

    POST /orders/sse                 body: filter JSON → token (text/plain)
    GET  /orders/sse/count           X-Request-Id: token → count events
    GET  /orders/sse?position&size   X-Request-Id: token → window events

An unknown or expired token answers 403 and the stream is never opened.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import PlainTextResponse, StreamingResponse

from backend.deps import Services, get_services
from backend.models.order import CreateOrderRequest, Order, OrderFilter
from backend.services.order_generator import random_order
from backend.services.query_reexecutor import CountQuery, StreamQuery, WindowQuery
from backend.services.stream_session import SessionRejected, StreamSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])

REQUEST_ID_HEADER = "X-Request-Id"

# Keep proxies from buffering or caching the event stream
_SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


def _parse_int(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def parse_window(position_raw: str | None, size_raw: str | None, default_size: int, max_size: int) -> WindowQuery:
    """
    Lenient window parsing: bad or missing position → 0, bad, missing or
    non-positive size → default_size. Size is capped at max_size.
    """
    position = _parse_int(position_raw)
    if position is None or position < 0:
        position = 0

    size = _parse_int(size_raw)
    if size is None or size <= 0:
        size = default_size

    return WindowQuery(position=position, size=min(size, max_size))


def _open_stream(services: Services, token: str | None, query: StreamQuery):
    session = StreamSession(
        services.staging,
        services.notifier,
        services.store,
        query,
        keepalive_seconds=services.keepalive_seconds,
    )
    try:
        session.open(token)
    except SessionRejected as e:
        message = f"Missing {REQUEST_ID_HEADER}" if not token else str(e)
        return PlainTextResponse(message, status_code=status.HTTP_403_FORBIDDEN)

    return StreamingResponse(session.events(), media_type="text/event-stream", headers=_SSE_HEADERS)


@router.post("/sse", status_code=200, response_class=PlainTextResponse)
async def stage_filter(
    order_filter: OrderFilter | None = None,
    services: Services = Depends(get_services),
) -> PlainTextResponse:
    """Stage a filter for the stream endpoints and return its token."""
    token = services.staging.stage(order_filter or OrderFilter())
    return PlainTextResponse(token)


@router.get("/sse/count")
async def stream_count(
    x_request_id: str | None = Header(default=None),
    services: Services = Depends(get_services),
):
    """Live count of orders matching the staged filter."""
    return _open_stream(services, x_request_id, CountQuery())


@router.get("/sse")
async def stream_window(
    request: Request,
    x_request_id: str | None = Header(default=None),
    services: Services = Depends(get_services),
):
    """Live window [position, position + size) of orders matching the staged filter."""
    query = parse_window(
        request.query_params.get("position"),
        request.query_params.get("size"),
        services.default_window_size,
        services.max_window_size,
    )
    return _open_stream(services, x_request_id, query)


@router.post("", status_code=201)
async def create_order(
    req: CreateOrderRequest,
    services: Services = Depends(get_services),
) -> Order:
    """Insert an order. Every open stream recomputes."""
    order = await services.store.create(req)
    logger.info("orders: created order id=%d status=%s", order.id, order.status.value)
    return order


@router.post("/random", status_code=201)
async def create_random_order(services: Services = Depends(get_services)) -> Order:
    """Insert a random order."""
    order = await services.store.create(random_order())
    logger.info("orders: created random order id=%d status=%s", order.id, order.status.value)
    return order
