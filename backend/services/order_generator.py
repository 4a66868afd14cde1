"""
Demo data for the live orders table: initial seeding and a background
task that keeps inserting random orders so open streams have something
to react to.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import random
from datetime import date, timedelta

from backend.models.order import CreateOrderRequest, OrderFilter, OrderStatus
from backend.repos.order_store import OrderStore

logger = logging.getLogger(__name__)

CUSTOMERS = [
    "Olivia Smith",
    "Liam Johnson",
    "Emma Williams",
    "Noah Brown",
    "Ava Jones",
    "Elijah Garcia",
    "Isabella Martinez",
    "Lucas Rodriguez",
    "Mia Davis",
    "Mason Hernandez",
    "Amelia Lopez",
    "Ethan Gonzalez",
]

ADDRESSES = [f"City {n}, Street {n}" for n in range(1, 11)]


def seed_orders(count: int, today: date | None = None, rng: random.Random | None = None) -> list[CreateOrderRequest]:
    """
    Build `count` distinct customer/address/status combinations.

    Dates and amounts are derived from the position so a given shuffle
    always produces the same rows.
    """
    today = today or date.today()
    rng = rng or random.Random()

    combinations = list(itertools.product(CUSTOMERS, ADDRESSES, list(OrderStatus)))
    rng.shuffle(combinations)

    orders = []
    for index, (customer, address, status) in enumerate(combinations[:count]):
        n = index + 1
        orders.append(
            CreateOrderRequest(
                order_date=today - timedelta(days=(n + 1) % 30),
                customer=customer,
                delivery_address=address,
                status=status,
                amount=float((n + 1) % 1000 + 10),
            )
        )
    return orders


def random_order(today: date | None = None, rng: random.Random | None = None) -> CreateOrderRequest:
    """One random order dated within the last 30 days."""
    today = today or date.today()
    rng = rng or random.Random()
    return CreateOrderRequest(
        order_date=today - timedelta(days=rng.randrange(30)),
        customer=rng.choice(CUSTOMERS),
        delivery_address=rng.choice(ADDRESSES),
        status=rng.choice(list(OrderStatus)),
        amount=round(rng.uniform(10.0, 1010.0), 2),
    )


async def seed_if_empty(store: OrderStore, count: int) -> int:
    """
    Insert the seed orders in one mutation when the store is empty.

    Returns:
        Number of orders inserted (0 if the store already had data)
    """
    if count <= 0 or await store.count(OrderFilter()) > 0:
        return 0
    created = await store.create_many(seed_orders(count))
    logger.info("orders: seeded %d orders", len(created))
    return len(created)


async def insert_random_orders(store: OrderStore, interval_seconds: float) -> None:
    """
    Background task inserting one random order every interval.

    Runs until cancelled. A failed insert is logged and the loop continues.
    """
    while True:
        try:
            order = await store.create(random_order())
            logger.debug("orders: inserted random order id=%d status=%s", order.id, order.status.value)
        except Exception as e:
            logger.error("orders: failed to insert random order: %s", e)

        await asyncio.sleep(interval_seconds)
