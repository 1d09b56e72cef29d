"""
Customer domain model and the order replica embedded in it.

A customer keeps a denormalized copy of each of its orders. The copies
are held in a mapping keyed by order id, so a customer can never hold
two replicas of the same order.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .order import Order, OrderStatus, parse_datetime


@dataclass(eq=False)
class OrderReplica:
    """
    Denormalized copy of an order stored inside a customer.

    Identity is the order id alone: two replicas with the same id are
    the same replica regardless of version or status.

    Attributes:
        id: Order id copied from the authoritative order
        customer_id: Customer the order belongs to
        version: Order version the replica was built from
        status: Order status at that version
    """

    id: str
    customer_id: str
    version: int = 0
    status: OrderStatus = OrderStatus.CREATED

    def __post_init__(self) -> None:
        if not isinstance(self.status, OrderStatus):
            self.status = OrderStatus(self.status)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OrderReplica):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @classmethod
    def from_order(cls, order: Order) -> "OrderReplica":
        """Build the replica payload for an authoritative order."""
        if order.id is None:
            raise ValueError("Cannot build a replica for an order without id")
        return cls(
            id=order.id,
            customer_id=order.customer_id,
            version=order.version or 0,
            status=order.status,
        )

    def matches(self, order: Order) -> bool:
        """Check whether the replica reflects the current state of ``order``."""
        return (
            self.id == order.id
            and self.customer_id == order.customer_id
            and self.version == (order.version or 0)
            and self.status == order.status
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert replica to dictionary for persistence."""
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "version": self.version,
            "status": self.status.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderReplica":
        """Create replica from dictionary."""
        return cls(
            id=data["id"],
            customer_id=data["customer_id"],
            version=data.get("version", 0),
            status=OrderStatus(data.get("status", OrderStatus.CREATED.value)),
        )


@dataclass
class Customer:
    """
    Domain model representing a customer and its order replicas.

    Attributes:
        id: Customer ID (None for new customers)
        name: Display name
        email: Contact email
        replicas: Embedded order replicas keyed by order id
        created_at: Creation timestamp set by the store
        updated_at: Last modification timestamp set by the store
    """

    id: str | None = None
    name: str = ""
    email: str = ""
    replicas: dict[str, OrderReplica] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def order_ids(self) -> list[str]:
        """Ids of the orders mirrored in this customer, sorted."""
        return sorted(self.replicas)

    def upsert_replica(self, replica: OrderReplica) -> bool:
        """
        Insert or replace a replica (remove-then-insert).

        A replica older than the stored one is ignored so a late replay
        never moves the copy backwards.

        Returns:
            bool: True if the stored replicas changed
        """
        current = self.replicas.get(replica.id)
        if current is not None and replica.version < current.version:
            return False
        self.replicas.pop(replica.id, None)
        self.replicas[replica.id] = replica
        return True

    def remove_replica(self, order_id: str) -> bool:
        """
        Remove a replica if present.

        Returns:
            bool: True if a replica was removed
        """
        return self.replicas.pop(order_id, None) is not None

    def to_dict(self) -> dict[str, Any]:
        """Convert customer to dictionary for persistence."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "replicas": {order_id: replica.to_dict() for order_id, replica in self.replicas.items()},
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Customer":
        """Create customer from dictionary."""
        replicas = {
            order_id: OrderReplica.from_dict(replica) for order_id, replica in (data.get("replicas") or {}).items()
        }
        return cls(
            id=data.get("id"),
            name=data.get("name", ""),
            email=data.get("email", ""),
            replicas=replicas,
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )
