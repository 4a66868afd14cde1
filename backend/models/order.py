"""Order models for the live orders table."""

from __future__ import annotations

from datetime import date
from enum import Enum

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    NEW = "NEW"
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    ON_HOLD = "ON_HOLD"
    BACKORDER = "BACKORDER"
    REFUNDED = "REFUNDED"
    PARTIAL = "PARTIAL"
    PROCESSING = "PROCESSING"


class Order(BaseModel):
    """Core order model. Represents a row in the orders table."""

    model_config = {"frozen": True}

    id: int
    order_date: date
    customer: str
    delivery_address: str
    status: OrderStatus
    amount: float


class CreateOrderRequest(BaseModel):
    """What the client sends to POST /orders."""

    model_config = {"extra": "forbid", "frozen": True}

    order_date: date
    customer: str = Field(min_length=1, max_length=128)
    delivery_address: str = Field(min_length=1, max_length=256)
    status: OrderStatus
    amount: float = Field(ge=0)


class OrderFilter(BaseModel):
    """
    Immutable set of optional predicates over orders.

    order_date, status and amount match by equality; customer and
    delivery_address match as case-sensitive substrings. A filter with
    no predicates set matches every order. Unknown keys are ignored.
    """

    model_config = {"extra": "ignore", "frozen": True}

    order_date: date | None = None
    customer: str | None = None
    delivery_address: str | None = None
    status: OrderStatus | None = None
    amount: float | None = None

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in type(self).model_fields)

    def matches(self, order: Order | CreateOrderRequest) -> bool:
        """In-process evaluation of the same predicates the SQL store applies."""
        if self.order_date is not None and order.order_date != self.order_date:
            return False
        if self.customer is not None and self.customer not in order.customer:
            return False
        if self.delivery_address is not None and self.delivery_address not in order.delivery_address:
            return False
        if self.status is not None and order.status != self.status:
            return False
        if self.amount is not None and order.amount != self.amount:
            return False
        return True
