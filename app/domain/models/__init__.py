"""
Domain models for business entities.

These models represent core business concepts and contain
business logic and invariants.
"""

from .customer import Customer, OrderReplica
from .order import Order, OrderStatus
from .product_line import ProductLine
from .sync_record import SyncOperation, SyncRecord, SyncStatus

__all__ = [
    "Customer",
    "Order",
    "OrderReplica",
    "OrderStatus",
    "ProductLine",
    "SyncOperation",
    "SyncRecord",
    "SyncStatus",
]
