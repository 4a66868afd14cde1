"""
Repository layer for Live Orders.

All SQL lives here and ONLY here. No database access outside this module.
"""

from backend.repos.order_repo import OrderRepo
from backend.repos.order_store import MemoryOrderStore, OrderStore

__all__ = [
    "OrderStore",
    "MemoryOrderStore",
    "OrderRepo",
]
