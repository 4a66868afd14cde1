"""
Pydantic models for Live Orders.

All data shapes defined here. No imports from db, repos, or routes.
"""

from backend.models.order import CreateOrderRequest, Order, OrderFilter, OrderStatus

__all__ = [
    "Order",
    "OrderStatus",
    "OrderFilter",
    "CreateOrderRequest",
]
