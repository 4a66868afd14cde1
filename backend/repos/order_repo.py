"""Postgres-backed order store."""

from __future__ import annotations

from typing import Any

import asyncpg

from backend.db import system_conn
from backend.models.order import CreateOrderRequest, Order, OrderFilter
from backend.repos.order_store import OrderStore


def _row_to_order(row: asyncpg.Record) -> Order:
    """Convert a database row to an Order model."""
    return Order(
        id=row["id"],
        order_date=row["order_date"],
        customer=row["customer"],
        delivery_address=row["delivery_address"],
        status=row["status"],
        amount=row["amount"],
    )


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_where(order_filter: OrderFilter) -> tuple[str, list[Any]]:
    """
    Translate a filter into a WHERE clause and its positional arguments.

    Returns ("", []) for a filter with no predicates.
    """
    if order_filter.is_empty:
        return "", []

    clauses: list[str] = []
    args: list[Any] = []

    def add(template: str, value: Any) -> None:
        args.append(value)
        clauses.append(template.format(n=len(args)))

    if order_filter.order_date is not None:
        add("order_date = ${n}", order_filter.order_date)
    if order_filter.customer is not None:
        add("customer LIKE ${n} ESCAPE '\\'", f"%{_escape_like(order_filter.customer)}%")
    if order_filter.delivery_address is not None:
        add("delivery_address LIKE ${n} ESCAPE '\\'", f"%{_escape_like(order_filter.delivery_address)}%")
    if order_filter.status is not None:
        add("status = ${n}", order_filter.status.value)
    if order_filter.amount is not None:
        add("amount = ${n}", order_filter.amount)

    return "WHERE " + " AND ".join(clauses), args


class OrderRepo(OrderStore):
    """All order-related database operations."""

    async def count(self, order_filter: OrderFilter) -> int:
        where, args = build_where(order_filter)
        async with system_conn() as conn:
            # S608/B608: where only contains fixed column predicates; values are bound
            return await conn.fetchval(f"SELECT count(*) FROM orders {where}", *args)  # nosec B608

    async def page(self, order_filter: OrderFilter, position: int, size: int) -> list[Order]:
        where, args = build_where(order_filter)
        limit_n = len(args) + 1
        async with system_conn() as conn:
            rows = await conn.fetch(
                f"""
                SELECT * FROM orders
                {where}
                ORDER BY id ASC
                LIMIT ${limit_n} OFFSET ${limit_n + 1}
                """,  # nosec B608
                *args,
                size,
                position,
            )
            return [_row_to_order(row) for row in rows]

    async def create(self, req: CreateOrderRequest) -> Order:
        created = await self.create_many([req])
        return created[0]

    async def create_many(self, reqs: list[CreateOrderRequest]) -> list[Order]:
        """
        Insert orders in a single transaction.

        The notifier is bumped only after the transaction has committed.
        """
        if not reqs:
            return []

        created: list[Order] = []
        async with system_conn() as conn:
            for req in reqs:
                row = await conn.fetchrow(
                    """
                    INSERT INTO orders (order_date, customer, delivery_address, status, amount)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING *
                    """,
                    req.order_date,
                    req.customer,
                    req.delivery_address,
                    req.status.value,
                    req.amount,
                )
                created.append(_row_to_order(row))

        self.notifier.bump()
        return created
