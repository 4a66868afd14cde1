"""Wire models shared with the Live Orders server."""

from __future__ import annotations

from datetime import date
from enum import Enum

from pydantic import BaseModel


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
    model_config = {"frozen": True}

    id: int
    order_date: date
    customer: str
    delivery_address: str
    status: OrderStatus
    amount: float


class OrderFilter(BaseModel):
    """Filter value; every field is optional and unset fields are not sent."""

    model_config = {"frozen": True}

    order_date: date | None = None
    customer: str | None = None
    delivery_address: str | None = None
    status: OrderStatus | None = None
    amount: float | None = None

    def to_json(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)
