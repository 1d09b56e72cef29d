"""
OrderService - entry point of the request layer into the order side.

Writes go through the SyncCoordinator (lock, local write, propagation).
Global reads come from the order store; customer-scoped reads come from
the customer's replica set, which is what the customer side serves.
"""

import logging
from typing import Optional

from app.db.customer_store import CustomerStore
from app.db.order_store import OrderStore
from app.domain.models import Customer, Order, OrderReplica
from app.services.sync.coordinator import MutationResult, SyncCoordinator
from app.utils.error_handler import NotFoundException, ValidationException

logger = logging.getLogger(__name__)


class OrderService:
    """
    Order operations, global and customer-scoped.

    Example:
        ```python
        service = OrderService(coordinator, customer_store)
        result = await service.create_order_for_customer("c1", order)
        replicas = await service.list_orders_for_customer("c1")
        ```
    """

    def __init__(self, coordinator: SyncCoordinator, customer_store: Optional[CustomerStore] = None):
        """
        Args:
            coordinator: Write path for every order mutation
            customer_store: Customer side, required for customer-scoped reads
        """
        self.coordinator = coordinator
        self.order_store: OrderStore = coordinator.order_store
        self.customer_store = customer_store

    # === ÓRDENES ===

    async def create_order(self, order: Order) -> MutationResult:
        return await self.coordinator.create_order(order)

    async def update_order(self, order: Order) -> MutationResult:
        return await self.coordinator.update_order(order)

    async def delete_order(self, order_id: str) -> MutationResult:
        return await self.coordinator.delete_order(order_id)

    async def get_order(self, order_id: str) -> Order:
        """
        Raises:
            NotFoundException: If the order does not exist
        """
        order = await self.order_store.get(order_id)
        if order is None:
            raise NotFoundException(message=f"Order {order_id} not found", resource="order", resource_id=order_id)
        return order

    async def list_orders(self, customer_id: Optional[str] = None) -> list[Order]:
        if customer_id:
            return await self.order_store.list_by_customer(customer_id)
        return await self.order_store.list_all()

    # === ÓRDENES POR CLIENTE ===

    def _require_customer_store(self) -> CustomerStore:
        if self.customer_store is None:
            raise ValidationException(
                message="Customer-scoped reads require local access to the customer store",
                field="customer_id",
            )
        return self.customer_store

    async def _require_customer(self, customer_id: str) -> Optional[Customer]:
        if self.customer_store is None:
            return None
        customer = await self.customer_store.get_customer(customer_id)
        if customer is None:
            raise NotFoundException(
                message=f"Customer {customer_id} not found", resource="customer", resource_id=customer_id
            )
        return customer

    async def _require_owned_order(self, customer_id: str, order_id: str) -> Order:
        order = await self.order_store.get(order_id)
        if order is None or order.customer_id != customer_id:
            raise NotFoundException(
                message=f"Order {order_id} not found for customer {customer_id}",
                resource="order",
                resource_id=order_id,
            )
        return order

    async def create_order_for_customer(self, customer_id: str, order: Order) -> MutationResult:
        """
        Create an order owned by ``customer_id``.

        Raises:
            NotFoundException: If the customer does not exist
            ValidationException: If the payload names a different customer or is invalid
        """
        if order.customer_id and order.customer_id != customer_id:
            raise ValidationException(
                message=f"Order customer_id {order.customer_id} does not match customer {customer_id}",
                field="customer_id",
                invalid_value=order.customer_id,
                expected_format=customer_id,
            )
        await self._require_customer(customer_id)
        return await self.coordinator.create_order(order.copy(customer_id=customer_id))

    async def list_orders_for_customer(self, customer_id: str) -> list[OrderReplica]:
        """
        Raises:
            NotFoundException: If the customer does not exist
        """
        return await self._require_customer_store().list_replicas(customer_id)

    async def get_order_for_customer(self, customer_id: str, order_id: str) -> OrderReplica:
        """
        Raises:
            NotFoundException: If the customer or its replica of the order does not exist
        """
        store = self._require_customer_store()
        await self._require_customer(customer_id)
        replica = await store.get_replica(customer_id, order_id)
        if replica is None:
            raise NotFoundException(
                message=f"Order {order_id} not found for customer {customer_id}",
                resource="order",
                resource_id=order_id,
            )
        return replica

    async def update_order_for_customer(self, customer_id: str, order: Order) -> MutationResult:
        """
        Raises:
            NotFoundException: If the order does not exist or belongs to another customer
            ConflictException: If ``order.version`` is stale
            ValidationException: If the order is invalid
        """
        await self._require_owned_order(customer_id, order.id)
        return await self.coordinator.update_order(order.copy(customer_id=customer_id))

    async def delete_order_for_customer(self, customer_id: str, order_id: str) -> MutationResult:
        """
        Raises:
            NotFoundException: If the order does not exist or belongs to another customer
        """
        await self._require_owned_order(customer_id, order_id)
        return await self.coordinator.delete_order(order_id)
