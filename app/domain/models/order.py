"""
Order domain model (Aggregate Root).

The order side is the source of truth: every other copy of an order
(the replica embedded in a customer) is derived from this model.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from app.domain.value_objects.address import Address
from app.domain.value_objects.money import Money

from .product_line import ProductLine


class OrderStatus(str, Enum):
    """Lifecycle status of an order."""

    CREATED = "CREATED"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


@dataclass
class Order:
    """
    Domain model representing an order (Aggregate Root).

    Business validation lives in ``OrderValidator`` so that every field
    error can be reported at once; this class only normalizes types.

    Attributes:
        customer_id: Owning customer, immutable once the order exists
        payment_details: Opaque payment reference (required)
        products: Ordered products, keyed by product id
        shipping_address: Optional delivery address
        status: Order lifecycle status
        payment_confirmed: Whether the payment was confirmed
        id: Order ID assigned by the store (None for new orders)
        version: Optimistic concurrency token (None for new orders)
        created_at: Creation timestamp set by the store
        updated_at: Last modification timestamp set by the store
    """

    customer_id: str
    payment_details: str
    products: list[ProductLine] = field(default_factory=list)
    shipping_address: Address | None = None
    status: OrderStatus = OrderStatus.CREATED
    payment_confirmed: bool = False
    id: str | None = None
    version: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        """Coerce raw values coming from dictionaries or requests."""
        if not isinstance(self.status, OrderStatus):
            self.status = OrderStatus(self.status)

    @property
    def product_ids(self) -> list[str]:
        """Product ids in line order."""
        return [line.product_id for line in self.products]

    @property
    def total(self) -> Money:
        """Order total over all product lines."""
        total = Money.zero(self.products[0].unit_price.currency) if self.products else Money.zero()
        for line in self.products:
            total = total + line.subtotal
        return total

    @property
    def is_persisted(self) -> bool:
        """Check if the order was already stored."""
        return self.id is not None and self.version is not None

    def copy(self, **changes: Any) -> "Order":
        """Return a copy with the given fields replaced."""
        clone = replace(self, **changes)
        if "products" not in changes:
            clone.products = [replace(line) for line in self.products]
        return clone

    def to_dict(self) -> dict[str, Any]:
        """Convert order to a JSON-compatible document."""
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "version": self.version,
            "status": self.status.value,
            "payment_confirmed": self.payment_confirmed,
            "payment_details": self.payment_details,
            "shipping_address": self.shipping_address.to_dict() if self.shipping_address else None,
            "products": [line.to_dict() for line in self.products],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Order":
        """Create order from a stored document."""
        return cls(
            id=data.get("id"),
            customer_id=data["customer_id"],
            version=data.get("version"),
            status=OrderStatus(data.get("status", OrderStatus.CREATED.value)),
            payment_confirmed=data.get("payment_confirmed", False),
            payment_details=data.get("payment_details", ""),
            shipping_address=Address.from_dict(data.get("shipping_address")),
            products=[ProductLine.from_dict(line) for line in data.get("products", [])],
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )


def parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)
