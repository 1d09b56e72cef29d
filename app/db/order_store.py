"""
Order repository: authoritative persistence for orders.

Optimistic concurrency: every successful update increments ``version``
by exactly one, and a write that carries a stale version is rejected.
"""

import logging
import uuid
from datetime import UTC, datetime
from typing import Optional

from app.db.base import BaseRepository, log_operation
from app.db.document_store import DocumentDatabase
from app.domain.models.order import Order
from app.services.orders.validators.order_validator import OrderValidator
from app.utils.error_handler import ConflictException, NotFoundException

logger = logging.getLogger(__name__)


class OrderStore(BaseRepository):
    """
    Repository for Order aggregates.

    Example:
        ```python
        store = OrderStore(database)
        order = await store.create(Order(customer_id="C1", payment_details="card", products=[...]))
        order.status = OrderStatus.CONFIRMED
        order = await store.update(order)  # version 0 -> 1
        ```
    """

    collection_name = "orders"

    def __init__(self, database: DocumentDatabase, validator: Optional[OrderValidator] = None):
        super().__init__(database)
        self.validator = validator or OrderValidator()

    def next_identifier(self) -> str:
        """Generate a new order id."""
        return uuid.uuid4().hex

    @log_operation()
    async def create(self, order: Order) -> Order:
        """
        Persist a new order.

        Args:
            order: Order to create; ``id`` is assigned when missing

        Returns:
            Order: Stored order with id, version 0 and timestamps

        Raises:
            ValidationException: If the order is invalid
            ConflictException: If an order with the same id already exists
        """
        self.validator.validate(order)

        now = datetime.now(UTC)
        stored = order.copy(id=order.id or self.next_identifier(), version=0, created_at=now, updated_at=now)

        if stored.id in self.collection:
            raise ConflictException(
                message=f"Order {stored.id} already exists",
                resource_id=stored.id,
            )

        self.collection.put(stored.id, stored.to_dict())
        logger.debug(f"Order {stored.id} created for customer {stored.customer_id}")
        return stored

    @log_operation()
    async def update(self, order: Order) -> Order:
        """
        Persist a new version of an existing order.

        Args:
            order: Order carrying the version the caller read

        Returns:
            Order: Stored order with ``version + 1``

        Raises:
            NotFoundException: If the order does not exist
            ConflictException: If the supplied version is stale
            ValidationException: If the customer changes or the order is invalid
        """
        current = await self.get(order.id) if order.id else None
        if current is None:
            raise NotFoundException(message=f"Order {order.id} not found", resource="order", resource_id=order.id)

        if order.version != current.version:
            raise ConflictException(
                message=f"Order {order.id} was modified concurrently (expected version {order.version}, "
                f"stored version {current.version})",
                resource_id=order.id,
                expected_version=order.version,
                actual_version=current.version,
            )

        self.validator.validate_update(current, order)

        stored = order.copy(
            version=current.version + 1,
            created_at=current.created_at,
            updated_at=datetime.now(UTC),
        )
        self.collection.put(stored.id, stored.to_dict())
        logger.debug(f"Order {stored.id} updated to version {stored.version}")
        return stored

    @log_operation()
    async def delete(self, order_id: str) -> Order:
        """
        Delete an order.

        Returns:
            Order: The deleted order

        Raises:
            NotFoundException: If the order does not exist
        """
        document = self.collection.delete(order_id)
        if document is None:
            raise NotFoundException(message=f"Order {order_id} not found", resource="order", resource_id=order_id)
        logger.debug(f"Order {order_id} deleted")
        return Order.from_dict(document)

    async def get(self, order_id: str) -> Optional[Order]:
        document = self.collection.get(order_id)
        return Order.from_dict(document) if document is not None else None

    async def list_all(self) -> list[Order]:
        return [Order.from_dict(document) for document in self.collection.values()]

    async def list_by_customer(self, customer_id: str) -> list[Order]:
        return [order for order in await self.list_all() if order.customer_id == customer_id]

    async def page(self, after: Optional[str] = None, limit: int = 100) -> list[Order]:
        """Orders sorted by id, strictly after ``after``."""
        return [Order.from_dict(document) for _, document in self.collection.page(after, limit)]
