"""
Order store interface and in-memory implementation.

Every store takes the ChangeNotifier it reports to and bumps it exactly
once per committed mutation, after the commit.
"""

from __future__ import annotations

import asyncio

from backend.models.order import CreateOrderRequest, Order, OrderFilter
from backend.services.change_notifier import ChangeNotifier


class OrderStore:
    """
    Abstract order store.
    Implement with Postgres for production, or in-memory for tests and dev.

    Reads return orders in ascending id order so that positions are stable.
    """

    def __init__(self, notifier: ChangeNotifier):
        self.notifier = notifier

    async def count(self, order_filter: OrderFilter) -> int:
        """Number of orders matching the filter."""
        raise NotImplementedError

    async def page(self, order_filter: OrderFilter, position: int, size: int) -> list[Order]:
        """Matching orders [position, position + size) in ascending id order."""
        raise NotImplementedError

    async def create(self, req: CreateOrderRequest) -> Order:
        """Insert one order and bump the notifier."""
        raise NotImplementedError

    async def create_many(self, reqs: list[CreateOrderRequest]) -> list[Order]:
        """Insert several orders as one mutation (a single bump)."""
        raise NotImplementedError


class MemoryOrderStore(OrderStore):
    """In-memory order store for tests and database-less runs."""

    def __init__(self, notifier: ChangeNotifier) -> None:
        super().__init__(notifier)
        self.orders: list[Order] = []
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def count(self, order_filter: OrderFilter) -> int:
        if order_filter.is_empty:
            return len(self.orders)
        return sum(1 for order in self.orders if order_filter.matches(order))

    async def page(self, order_filter: OrderFilter, position: int, size: int) -> list[Order]:
        matching = [order for order in self.orders if order_filter.matches(order)]
        return matching[position : position + size]

    async def create(self, req: CreateOrderRequest) -> Order:
        created = await self.create_many([req])
        return created[0]

    async def create_many(self, reqs: list[CreateOrderRequest]) -> list[Order]:
        if not reqs:
            return []

        async with self._lock:
            created = []
            for req in reqs:
                order = Order(id=self._next_id, **req.model_dump())
                self._next_id += 1
                created.append(order)
            # ids only grow, so appending keeps the list sorted
            self.orders = [*self.orders, *created]

        self.notifier.bump()
        return created
