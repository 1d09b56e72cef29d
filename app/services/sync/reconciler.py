"""
Reconciler: detects and repairs drift between orders and customer replicas.

A run has three steps:

1. Record replay. FAILED and EXHAUSTED records, and PENDING records left
   behind by a crash, are replayed once the grace period has passed. The
   replay always sends the current authoritative state of the order
   (upsert when it exists, delete when it is gone), and a record already
   superseded by a newer delivered epoch is simply closed.
2. Diff pass. Orders are compared with the replicas of their customer and
   every replica is checked against a live order of the same customer.
   The order store always wins. The pass is bounded in time and resumes
   from a checkpoint on the next run.
3. Purge of delivered records past the retention window.

Every repair happens under the order lock after re-reading the
authoritative state, and is skipped when the order is busy.
"""

import asyncio
import logging
import time
from contextlib import AsyncExitStack
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from app.core.metrics import record_reconcile_metric
from app.db.customer_store import CustomerStore
from app.db.order_store import OrderStore
from app.db.sync_record_store import SyncRecordStore
from app.domain.models import Customer, Order, OrderReplica, OrderStatus, SyncOperation, SyncRecord, SyncStatus
from app.services.sync.checkpoint import ReconcileCheckpointManager
from app.services.sync.interfaces import ISyncClient
from app.services.sync.propagation import Propagator
from app.utils.distributed_lock import LockBackend
from app.utils.error_handler import (
    DivergenceException,
    ErrorAggregator,
    NotFoundException,
    ValidationException,
)
from app.utils.notifications import send_sync_alert
from app.utils.order_lock import OrderLock
from app.utils.retry_handler import RetryPolicy

logger = logging.getLogger(__name__)

REPLAYABLE_STATUSES = (SyncStatus.FAILED, SyncStatus.EXHAUSTED, SyncStatus.PENDING)

PHASE_ORDERS = "orders"
PHASE_CUSTOMERS = "customers"

# Marca de fase completada en _scan
_DONE = object()


@dataclass
class ReconcileReport:
    """Counters of one reconciliation run."""

    started_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    finished_at: Optional[str] = None
    duration_seconds: float = 0.0
    records_replayed: int = 0
    records_delivered: int = 0
    records_superseded: int = 0
    records_failed: int = 0
    records_exhausted: int = 0
    orders_checked: int = 0
    customers_checked: int = 0
    divergences: int = 0
    repairs: int = 0
    unrepairable: int = 0
    skipped_busy: int = 0
    purged: int = 0
    completed: bool = False
    diff_enabled: bool = True
    resumed_from: Optional[Dict[str, Any]] = None
    errors: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class Reconciler:
    """
    Periodic repair process for the order/replica pair of stores.

    Example:
        ```python
        reconciler = Reconciler(order_store, customer_store, record_store, sync_client, policy)
        report = await reconciler.run_once()
        assert report["completed"]
        ```
    """

    def __init__(
        self,
        order_store: OrderStore,
        customer_store: Optional[CustomerStore],
        record_store: SyncRecordStore,
        sync_client: ISyncClient,
        retry_policy: Optional[RetryPolicy] = None,
        alert_sender: Optional[Callable[..., Any]] = None,
        checkpoint: Optional[ReconcileCheckpointManager] = None,
        grace_period_seconds: float = 60.0,
        batch_size: int = 100,
        max_duration_seconds: float = 120.0,
        retention_seconds: float = 7 * 24 * 3600,
        propagation_timeout: float = 5.0,
        lock_wait_timeout: Optional[float] = None,
        lock_backend: Optional[LockBackend] = None,
    ):
        """
        Initialize the reconciler.

        Args:
            order_store: Authoritative order repository
            customer_store: Customer repository; None disables the diff pass
                (customer side only reachable over HTTP)
            record_store: Sync record repository
            sync_client: Channel used to replay records
            retry_policy: Attempt budget shared with the coordinator
            alert_sender: Coroutine function for operator alerts
            checkpoint: Cursor storage for the diff pass
            grace_period_seconds: Minimum age of a record before it is replayed
            batch_size: Documents read per page during the diff pass
            max_duration_seconds: Time bound of one run
            retention_seconds: Age after which delivered records are purged
            propagation_timeout: Upper bound of one remote call during replays
            lock_wait_timeout: Lock wait for operator actions
            lock_backend: Lock backend, the global one when omitted
        """
        self.order_store = order_store
        self.customer_store = customer_store
        self.record_store = record_store
        self.retry_policy = retry_policy or RetryPolicy()
        self.alert_sender = alert_sender or send_sync_alert
        self.checkpoint = checkpoint or ReconcileCheckpointManager()
        self.grace_period = timedelta(seconds=grace_period_seconds)
        self.batch_size = batch_size
        self.max_duration_seconds = max_duration_seconds
        self.retention = timedelta(seconds=retention_seconds)
        self.lock_wait_timeout = lock_wait_timeout
        self.lock_backend = lock_backend
        self.propagator = Propagator(
            record_store=record_store,
            sync_client=sync_client,
            retry_policy=self.retry_policy,
            propagation_timeout=propagation_timeout,
            alert_sender=self.alert_sender,
        )
        self._run_lock = asyncio.Lock()
        self._alerted_divergences: Set[Tuple[str, str]] = set()
        self.last_report: Optional[Dict[str, Any]] = None

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def _try_lock(self, order_id: str) -> OrderLock:
        return OrderLock(order_id, wait_timeout=0, backend=self.lock_backend)

    def _wait_lock(self, order_id: str) -> OrderLock:
        return OrderLock(order_id, wait_timeout=self.lock_wait_timeout, backend=self.lock_backend)

    # === EJECUCIÓN ===

    async def run_once(self) -> Dict[str, Any]:
        """
        Run one reconciliation pass.

        Returns:
            Dict: Run report; ``skipped`` is set when another run is in progress
        """
        if self._run_lock.locked():
            logger.info("Reconcile run already in progress, skipping")
            return {"skipped": True, "reason": "already_running"}

        async with self._run_lock:
            started = time.monotonic()
            deadline = started + self.max_duration_seconds
            report = ReconcileReport(diff_enabled=self.customer_store is not None)
            aggregator = ErrorAggregator()

            logger.info("🔄 Reconcile run started")
            await self._replay_records(report, deadline)

            if self.customer_store is not None:
                report.completed = await self._diff_pass(report, aggregator, deadline)
            else:
                report.completed = True

            report.purged = await self.record_store.purge_delivered(datetime.now(UTC) - self.retention)

            report.duration_seconds = round(time.monotonic() - started, 4)
            report.finished_at = datetime.now(UTC).isoformat()
            report.errors = aggregator.get_summary()
            result = report.to_dict()
            self.last_report = result
            record_reconcile_metric(
                {key: value for key, value in result.items() if key not in ("errors", "resumed_from")}
            )

            logger.info(
                f"✅ Reconcile run finished in {report.duration_seconds}s - replayed: {report.records_replayed}, "
                f"divergences: {report.divergences}, repairs: {report.repairs}, "
                f"unrepairable: {report.unrepairable}, completed: {report.completed}"
            )
            return result

    # === REPLAY DE REGISTROS ===

    async def _replay_records(self, report: ReconcileReport, deadline: float) -> None:
        cutoff = datetime.now(UTC) - self.grace_period
        records = await self.record_store.list_by_status(REPLAYABLE_STATUSES, older_than=cutoff)

        for record in records:
            if time.monotonic() >= deadline:
                logger.warning("Reconcile time budget reached during record replay")
                return

            lock = self._try_lock(record.order_id)
            if not await lock.acquire():
                report.skipped_busy += 1
                continue
            try:
                outcome = await self._replay_locked(record.order_id, record.epoch)
            finally:
                await lock.release()

            if outcome is None:
                continue
            report.records_replayed += 1
            if outcome.note:
                report.records_superseded += 1
            elif outcome.status == SyncStatus.DELIVERED:
                report.records_delivered += 1
            elif outcome.status == SyncStatus.FAILED:
                report.records_failed += 1
            elif outcome.status == SyncStatus.EXHAUSTED:
                report.records_exhausted += 1

    async def _replay_locked(self, order_id: str, epoch: int) -> Optional[SyncRecord]:
        """Replay one record; the caller holds the order lock."""
        record = await self.record_store.get(order_id, epoch)
        if record is None or record.is_delivered:
            return None

        latest_delivered = await self.record_store.latest_delivered_epoch(order_id)
        if latest_delivered > record.epoch:
            record.mark_delivered(note=f"superseded by epoch {latest_delivered}")
            await self.record_store.save(record)
            logger.info(f"Sync record {record.key} superseded by delivered epoch {latest_delivered}")
            return record

        order = await self.order_store.get(order_id)
        if order is not None:
            operation = SyncOperation.CREATE if record.operation == SyncOperation.CREATE else SyncOperation.UPDATE
            replica = OrderReplica.from_order(order)
        else:
            operation = SyncOperation.DELETE
            replica = OrderReplica(id=order_id, customer_id=record.customer_id, status=OrderStatus.CANCELLED)

        was_exhausted = record.status == SyncStatus.EXHAUSTED
        if record.status != SyncStatus.PENDING:
            record.mark_pending()

        return await self.propagator.attempt(
            record,
            replica,
            operation=operation,
            source="reconciler",
            alert_on_exhaustion=not was_exhausted,
        )

    # === PASADA DE DIFERENCIAS ===

    async def _diff_pass(self, report: ReconcileReport, aggregator: ErrorAggregator, deadline: float) -> bool:
        checkpoint = await self.checkpoint.load_checkpoint()
        phase = PHASE_ORDERS
        cursor: Optional[str] = None
        if checkpoint:
            phase = checkpoint.get("phase", PHASE_ORDERS)
            cursor = checkpoint.get("cursor")
            report.resumed_from = {"phase": phase, "cursor": cursor}
            logger.info(f"Resuming diff pass at phase '{phase}' after '{cursor}'")

        if phase == PHASE_ORDERS:
            cursor = await self._scan(PHASE_ORDERS, cursor, report, aggregator, deadline)
            if cursor is not _DONE:
                return False
            phase, cursor = PHASE_CUSTOMERS, None
            await self.checkpoint.save_checkpoint(phase, cursor, self._stats(report))

        cursor = await self._scan(PHASE_CUSTOMERS, cursor, report, aggregator, deadline)
        if cursor is not _DONE:
            return False

        await self.checkpoint.delete_checkpoint()
        return True

    async def _scan(
        self,
        phase: str,
        cursor: Optional[str],
        report: ReconcileReport,
        aggregator: ErrorAggregator,
        deadline: float,
    ) -> Any:
        """Scan one phase from ``cursor``; returns ``_DONE`` or the cursor to resume from."""
        while True:
            if time.monotonic() >= deadline:
                await self.checkpoint.save_checkpoint(phase, cursor, self._stats(report))
                logger.warning(f"Reconcile time budget reached in phase '{phase}', checkpoint at '{cursor}'")
                return cursor

            if phase == PHASE_ORDERS:
                batch: List[Any] = await self.order_store.page(after=cursor, limit=self.batch_size)
            else:
                batch = await self.customer_store.page(after=cursor, limit=self.batch_size)
            if not batch:
                return _DONE

            for item in batch:
                if phase == PHASE_ORDERS:
                    await self._check_order(item, report, aggregator)
                else:
                    await self._check_customer(item, report, aggregator)
                aggregator.increment_processed()
                cursor = item.id

            await self.checkpoint.save_checkpoint(phase, cursor, self._stats(report))

    @staticmethod
    def _stats(report: ReconcileReport) -> Dict[str, int]:
        return {
            "orders_checked": report.orders_checked,
            "customers_checked": report.customers_checked,
            "repairs": report.repairs,
        }

    async def _check_order(self, order: Order, report: ReconcileReport, aggregator: ErrorAggregator) -> None:
        report.orders_checked += 1
        customer = await self.customer_store.get_customer(order.customer_id)

        if customer is None:
            report.divergences += 1
            report.unrepairable += 1
            divergence = DivergenceException(
                message=f"Order {order.id} references customer {order.customer_id} which does not exist",
                kind="missing_customer",
                order_id=order.id,
                customer_id=order.customer_id,
                repairable=False,
            )
            aggregator.add_error(divergence)
            await self._alert_unrepairable(divergence)
            return

        self._alerted_divergences.discard((order.id, "missing_customer"))
        replica = customer.replicas.get(order.id)
        if replica is not None and replica.matches(order):
            return

        kind = "missing_replica" if replica is None else "stale_replica"
        report.divergences += 1
        aggregator.add_error(
            DivergenceException(
                message=f"Replica of order {order.id} in customer {order.customer_id} is {kind.split('_')[0]}",
                kind=kind,
                order_id=order.id,
                customer_id=order.customer_id,
            )
        )
        await self._repair_order(order.id, report)

    async def _check_customer(self, customer: Customer, report: ReconcileReport, aggregator: ErrorAggregator) -> None:
        report.customers_checked += 1

        for order_id in customer.order_ids:
            order = await self.order_store.get(order_id)
            if order is not None and order.customer_id == customer.id:
                continue

            report.divergences += 1
            aggregator.add_error(
                DivergenceException(
                    message=f"Customer {customer.id} holds a replica of order {order_id} without a live order",
                    kind="orphan_replica",
                    order_id=order_id,
                    customer_id=customer.id,
                )
            )
            await self._remove_orphan(customer.id, order_id, report)

    async def _repair_order(self, order_id: str, report: ReconcileReport) -> None:
        lock = self._try_lock(order_id)
        if not await lock.acquire():
            report.skipped_busy += 1
            return
        try:
            order = await self.order_store.get(order_id)
            if order is None:
                return
            customer = await self.customer_store.get_customer(order.customer_id)
            if customer is None:
                return
            current = customer.replicas.get(order.id)
            if current is not None and current.matches(order):
                return
            if current is not None and current.version > (order.version or 0):
                await self.customer_store.remove_replica(order.customer_id, order.id)
            await self.customer_store.add_replica(order.customer_id, OrderReplica.from_order(order))
            report.repairs += 1
            logger.info(f"🔧 Repaired replica of order {order.id} in customer {order.customer_id}")
        finally:
            await lock.release()

    async def _remove_orphan(self, customer_id: str, order_id: str, report: ReconcileReport) -> None:
        lock = self._try_lock(order_id)
        if not await lock.acquire():
            report.skipped_busy += 1
            return
        try:
            order = await self.order_store.get(order_id)
            if order is not None and order.customer_id == customer_id:
                return
            if await self.customer_store.remove_replica(customer_id, order_id):
                report.repairs += 1
                logger.info(f"🔧 Removed orphan replica {order_id} from customer {customer_id}")
        finally:
            await lock.release()

    async def _alert_unrepairable(self, divergence: DivergenceException) -> None:
        key = (divergence.order_id, divergence.kind)
        if key in self._alerted_divergences:
            return
        self._alerted_divergences.add(key)
        await self.alert_sender("unrepairable_divergence", divergence.message, divergence.details)

    # === ACCIONES DE OPERADOR ===

    async def rebuild_customer(self, customer_id: str) -> Customer:
        """
        Force the replica set of a customer to the authoritative state.

        Raises:
            NotFoundException: If the customer does not exist
            ValidationException: If the diff pass is disabled
            LockAcquisitionError: If one of the involved orders stays busy
        """
        if self.customer_store is None:
            raise ValidationException(
                message="Customer rebuild requires local access to the customer store",
                field="customer_id",
                invalid_value=customer_id,
            )

        customer = await self.customer_store.get_customer(customer_id)
        if customer is None:
            raise NotFoundException(
                message=f"Customer {customer_id} not found", resource="customer", resource_id=customer_id
            )

        orders = await self.order_store.list_by_customer(customer_id)
        involved = sorted(set(customer.replicas) | {order.id for order in orders})

        async with AsyncExitStack() as stack:
            for order_id in involved:
                await stack.enter_async_context(self._wait_lock(order_id))

            orders = await self.order_store.list_by_customer(customer_id)
            rebuilt = await self.customer_store.replace_replica_set(
                customer_id, [OrderReplica.from_order(order) for order in orders]
            )

        logger.info(f"🔧 Rebuilt replica set of customer {customer_id} ({len(rebuilt.replicas)} replicas)")
        return rebuilt

    async def replay_record(self, order_id: str, epoch: int) -> SyncRecord:
        """
        Replay one record now, regardless of the grace period.

        Raises:
            NotFoundException: If the record does not exist
            ValidationException: If the record is already delivered
            LockAcquisitionError: If the order is busy
        """
        record = await self.record_store.require(order_id, epoch)
        if record.is_delivered:
            raise ValidationException(
                message=f"Sync record {record.key} is already delivered",
                field="status",
                invalid_value=record.status.value,
            )

        async with self._wait_lock(order_id):
            replayed = await self._replay_locked(order_id, epoch)
        return replayed or await self.record_store.require(order_id, epoch)

    async def resolve_record(self, order_id: str, epoch: int, note: str) -> SyncRecord:
        """
        Close a record manually (operator fixed the customer side by hand).

        Raises:
            NotFoundException: If the record does not exist
            ValidationException: If the record is already delivered or still PENDING
            LockAcquisitionError: If the order is busy
        """
        async with self._wait_lock(order_id):
            record = await self.record_store.require(order_id, epoch)
            if record.status not in (SyncStatus.FAILED, SyncStatus.EXHAUSTED):
                raise ValidationException(
                    message=f"Only FAILED or EXHAUSTED records can be resolved, {record.key} is {record.status.value}",
                    field="status",
                    invalid_value=record.status.value,
                )
            record.mark_delivered(note=f"resolved by operator: {note}")
            await self.record_store.save(record)

        logger.info(f"Sync record {record.key} resolved by operator")
        return record

