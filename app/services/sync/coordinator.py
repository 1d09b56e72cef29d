"""
SyncCoordinator: write locally, then propagate to the customer side.

Sequencing for every mutation:

1. Take the per-order lock (bounded wait).
2. Write the order and open a PENDING sync record in one local transaction.
   Validation, conflict and not-found errors abort here: nothing is
   recorded and nothing is propagated.
3. Propagate the replica change. On success the record is DELIVERED.
4. On a retryable failure the record goes FAILED and is retried with
   exponential backoff until it is DELIVERED or the attempt budget is
   spent (EXHAUSTED + operator alert). A permanent failure goes straight
   to EXHAUSTED.

The local write is never rolled back because of a propagation failure:
the order store is the source of truth and the caller receives the
mutation together with the sync status (degraded when not DELIVERED).

The order lock is held until the record reaches a terminal state. When
retries run in the background the lock is handed over to the retry task,
so a second mutation of the same order waits for the first to settle.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Optional, Set

from app.db.order_store import OrderStore
from app.db.sync_record_store import SyncRecordStore
from app.domain.models import Order, OrderReplica, SyncOperation, SyncRecord, SyncStatus
from app.services.sync.interfaces import ISyncClient
from app.services.sync.propagation import Propagator
from app.utils.distributed_lock import LockBackend
from app.utils.order_lock import OrderLock
from app.utils.retry_handler import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class MutationResult:
    """
    Outcome of a coordinated mutation.

    Attributes:
        order: The order as written locally (for DELETE, the deleted order)
        sync_record: The record tracking its propagation
    """

    order: Order
    sync_record: SyncRecord

    @property
    def sync_status(self) -> SyncStatus:
        return self.sync_record.status

    @property
    def degraded(self) -> bool:
        """The local write succeeded but the customer side is not up to date yet."""
        return self.sync_record.status != SyncStatus.DELIVERED

    def sync_info(self) -> Dict[str, Any]:
        return {
            "status": self.sync_record.status.value,
            "degraded": self.degraded,
            "epoch": self.sync_record.epoch,
            "attempts": self.sync_record.attempts,
            "last_error": self.sync_record.last_error,
        }


class SyncCoordinator:
    """
    Orchestrates order mutations and their propagation.

    Example:
        ```python
        coordinator = SyncCoordinator(order_store, record_store, LocalSyncClient(customer_store))
        result = await coordinator.create_order(order)
        if result.degraded:
            logger.warning(f"Order {result.order.id} pending sync: {result.sync_status}")
        ```
    """

    def __init__(
        self,
        order_store: OrderStore,
        record_store: SyncRecordStore,
        sync_client: ISyncClient,
        retry_policy: Optional[RetryPolicy] = None,
        alert_sender: Optional[Callable[..., Any]] = None,
        propagation_timeout: float = 5.0,
        retry_in_background: bool = True,
        lock_wait_timeout: Optional[float] = None,
        lock_backend: Optional[LockBackend] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            order_store: Authoritative order repository
            record_store: Sync record repository (same database as orders)
            sync_client: Outbound channel to the customer side
            retry_policy: Backoff and attempt budget
            alert_sender: Coroutine function called when a record is exhausted
            propagation_timeout: Upper bound of one remote call, in seconds
            retry_in_background: Run retries in a background task instead of inline
            lock_wait_timeout: Maximum wait for the order lock
            lock_backend: Lock backend, the global one when omitted
        """
        if order_store.database is not record_store.database:
            raise ValueError("Orders and sync records must share one database")

        self.order_store = order_store
        self.record_store = record_store
        self.sync_client = sync_client
        self.retry_policy = retry_policy or RetryPolicy()
        self.retry_in_background = retry_in_background
        self.lock_wait_timeout = lock_wait_timeout
        self.lock_backend = lock_backend
        self.propagator = Propagator(
            record_store=record_store,
            sync_client=sync_client,
            retry_policy=self.retry_policy,
            propagation_timeout=propagation_timeout,
            alert_sender=alert_sender,
        )
        self._tasks: Set[asyncio.Task] = set()

    def _order_lock(self, order_id: str) -> OrderLock:
        return OrderLock(order_id, wait_timeout=self.lock_wait_timeout, backend=self.lock_backend)

    # === MUTACIONES ===

    async def create_order(self, order: Order) -> MutationResult:
        """
        Create an order and propagate its replica.

        Raises:
            ValidationException: If the order is invalid
            ConflictException: If an order with the given id already exists
            LockAcquisitionError: If the order is busy
        """
        order_id = order.id or self.order_store.next_identifier()
        candidate = order.copy(id=order_id)

        async with self._order_lock(order_id) as lock:
            async with self.order_store.database.transaction():
                stored = await self.order_store.create(candidate)
                record = await self.record_store.open(stored.id, SyncOperation.CREATE, stored.customer_id)

            logger.info(f"📝 Order {stored.id} created for customer {stored.customer_id}")
            record = await self._propagate(record, OrderReplica.from_order(stored), lock)

        return MutationResult(order=stored, sync_record=record)

    async def update_order(self, order: Order) -> MutationResult:
        """
        Update an order (optimistic concurrency) and propagate its replica.

        Raises:
            NotFoundException: If the order does not exist
            ConflictException: If ``order.version`` is stale
            ValidationException: If the order is invalid or changes customer
            LockAcquisitionError: If the order is busy
        """
        async with self._order_lock(order.id) as lock:
            async with self.order_store.database.transaction():
                stored = await self.order_store.update(order)
                record = await self.record_store.open(stored.id, SyncOperation.UPDATE, stored.customer_id)

            logger.info(f"📝 Order {stored.id} updated to version {stored.version}")
            record = await self._propagate(record, OrderReplica.from_order(stored), lock)

        return MutationResult(order=stored, sync_record=record)

    async def delete_order(self, order_id: str) -> MutationResult:
        """
        Delete an order and remove its replica.

        Raises:
            NotFoundException: If the order does not exist
            LockAcquisitionError: If the order is busy
        """
        async with self._order_lock(order_id) as lock:
            async with self.order_store.database.transaction():
                deleted = await self.order_store.delete(order_id)
                record = await self.record_store.open(deleted.id, SyncOperation.DELETE, deleted.customer_id)

            logger.info(f"🗑️ Order {deleted.id} deleted")
            record = await self._propagate(record, OrderReplica.from_order(deleted), lock)

        return MutationResult(order=deleted, sync_record=record)

    # === PROPAGACIÓN ===

    async def _propagate(self, record: SyncRecord, replica: OrderReplica, lock: OrderLock) -> SyncRecord:
        record = await self.propagator.attempt(record, replica, source="coordinator")

        if record.status != SyncStatus.FAILED:
            return record

        if not self.retry_in_background:
            return await self._retry_until_terminal(record, replica)

        lock.detach()
        task = asyncio.create_task(
            self._retry_and_release(replace(record), replica, lock),
            name=f"sync-retry-{record.key}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_retry_done)
        logger.info(f"⏳ Order {record.order_id} epoch {record.epoch} scheduled for background retries")
        return record

    async def _retry_until_terminal(self, record: SyncRecord, replica: OrderReplica) -> SyncRecord:
        while record.status == SyncStatus.FAILED:
            delay = self.retry_policy.calculate_delay(record.attempts)
            logger.debug(f"Retrying {record.key} in {delay:.2f}s (attempt {record.attempts + 1})")
            await asyncio.sleep(delay)

            record.mark_pending()
            await self.record_store.save(record)
            record = await self.propagator.attempt(record, replica, source="retry")

        return record

    async def _retry_and_release(self, record: SyncRecord, replica: OrderReplica, lock: OrderLock) -> SyncRecord:
        try:
            return await self._retry_until_terminal(record, replica)
        finally:
            await lock.release()

    def _on_retry_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background sync retry {task.get_name()} failed: {error}", exc_info=error)

    @property
    def pending_retries(self) -> int:
        """Background retry tasks still running."""
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every background retry task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """
        Cancel background retries. Records left FAILED or PENDING are
        picked up by the reconciler.
        """
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} background sync retries")
