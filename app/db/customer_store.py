"""
Customer repository: customers and their embedded order replicas.

Replica writes are idempotent so that the order side can replay them
safely: adding an existing replica replaces it (never duplicates it) and
removing a missing replica succeeds without changes.
"""

import logging
import uuid
from datetime import UTC, datetime
from typing import Iterable, Optional

from app.db.base import BaseRepository, log_operation
from app.domain.models.customer import Customer, OrderReplica
from app.utils.error_handler import ConflictException, NotFoundException

logger = logging.getLogger(__name__)


class CustomerStore(BaseRepository):
    """
    Repository for Customer aggregates and their replica sets.
    """

    collection_name = "customers"

    def _load(self, customer_id: str) -> Optional[Customer]:
        document = self.collection.get(customer_id)
        return Customer.from_dict(document) if document is not None else None

    def _require(self, customer_id: str) -> Customer:
        customer = self._load(customer_id)
        if customer is None:
            raise NotFoundException(
                message=f"Customer {customer_id} not found", resource="customer", resource_id=customer_id
            )
        return customer

    def _save(self, customer: Customer) -> Customer:
        customer.updated_at = datetime.now(UTC)
        self.collection.put(customer.id, customer.to_dict())
        return customer

    # === CUSTOMERS ===

    @log_operation()
    async def create_customer(self, customer: Customer) -> Customer:
        """
        Persist a new customer.

        Raises:
            ConflictException: If a customer with the same id already exists
        """
        customer_id = customer.id or uuid.uuid4().hex
        if customer_id in self.collection:
            raise ConflictException(message=f"Customer {customer_id} already exists", resource_id=customer_id)

        now = datetime.now(UTC)
        stored = Customer(
            id=customer_id,
            name=customer.name,
            email=customer.email,
            replicas=dict(customer.replicas),
            created_at=now,
        )
        self._save(stored)
        logger.debug(f"Customer {customer_id} created")
        return stored

    @log_operation()
    async def update_customer(self, customer: Customer) -> Customer:
        """
        Update the customer profile. Replicas are owned by the sync
        protocol and are left untouched.

        Raises:
            NotFoundException: If the customer does not exist
        """
        current = self._require(customer.id)
        current.name = customer.name
        current.email = customer.email
        return self._save(current)

    async def get_customer(self, customer_id: str) -> Optional[Customer]:
        return self._load(customer_id)

    async def list_customers(self) -> list[Customer]:
        return [Customer.from_dict(document) for document in self.collection.values()]

    @log_operation()
    async def delete_customer(self, customer_id: str) -> Customer:
        """
        Delete a customer and its replicas.

        Raises:
            NotFoundException: If the customer does not exist
        """
        document = self.collection.delete(customer_id)
        if document is None:
            raise NotFoundException(
                message=f"Customer {customer_id} not found", resource="customer", resource_id=customer_id
            )
        return Customer.from_dict(document)

    async def page(self, after: Optional[str] = None, limit: int = 100) -> list[Customer]:
        """Customers sorted by id, strictly after ``after``."""
        return [Customer.from_dict(document) for _, document in self.collection.page(after, limit)]

    # === REPLICAS ===

    @log_operation()
    async def add_replica(self, customer_id: str, replica: OrderReplica) -> bool:
        """
        Insert or replace the replica of an order.

        Args:
            customer_id: Target customer
            replica: Replica payload; an existing replica with the same id is replaced

        Returns:
            bool: True if the replica set changed, False if the payload was older
                  than the stored replica and was ignored

        Raises:
            NotFoundException: If the customer does not exist
        """
        customer = self._require(customer_id)
        changed = customer.upsert_replica(replica)
        if changed:
            self._save(customer)
            logger.debug(f"Replica {replica.id} v{replica.version} stored in customer {customer_id}")
        else:
            logger.debug(f"Ignoring stale replica {replica.id} v{replica.version} for customer {customer_id}")
        return changed

    @log_operation()
    async def remove_replica(self, customer_id: str, order_id: str) -> bool:
        """
        Remove the replica of an order.

        Removing an absent replica, or from an absent customer, is a
        successful no-op.

        Returns:
            bool: True if a replica was removed
        """
        customer = self._load(customer_id)
        if customer is None or not customer.remove_replica(order_id):
            return False
        self._save(customer)
        logger.debug(f"Replica {order_id} removed from customer {customer_id}")
        return True

    @log_operation()
    async def replace_replica_set(self, customer_id: str, replicas: Iterable[OrderReplica]) -> Customer:
        """
        Force the replica set of a customer to exactly ``replicas``.

        Raises:
            NotFoundException: If the customer does not exist
        """
        customer = self._require(customer_id)
        customer.replicas = {replica.id: replica for replica in replicas}
        logger.info(f"Replica set of customer {customer_id} replaced ({len(customer.replicas)} replicas)")
        return self._save(customer)

    async def get_replica(self, customer_id: str, order_id: str) -> Optional[OrderReplica]:
        customer = self._load(customer_id)
        if customer is None:
            return None
        return customer.replicas.get(order_id)

    async def list_replicas(self, customer_id: str) -> list[OrderReplica]:
        """
        Raises:
            NotFoundException: If the customer does not exist
        """
        customer = self._require(customer_id)
        return [customer.replicas[order_id] for order_id in customer.order_ids]
