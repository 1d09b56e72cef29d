"""
SyncComponentsFactory - wires stores, sync client, coordinator and reconciler.

Orders and sync records share one document database so that an order
write and its sync record are committed together. Customers live in a
separate database (the customer side of the system).
"""

import functools
import logging
from dataclasses import dataclass
from typing import Any, Optional

from app.core.config import Settings, get_settings
from app.db import CustomerStore, DocumentDatabase, OrderStore, SyncRecordStore
from app.services.orders.validators import OrderValidator
from app.services.sync.checkpoint import ReconcileCheckpointManager
from app.services.sync.coordinator import SyncCoordinator
from app.services.sync.interfaces import ISyncClient
from app.services.sync.reconciler import Reconciler
from app.services.sync.sync_client import HttpSyncClient, LocalSyncClient
from app.utils.distributed_lock import LockBackend
from app.utils.notifications import AlertRecorder, get_alert_recorder, send_sync_alert
from app.utils.retry_handler import RetryPolicy, create_sync_retry_policy

logger = logging.getLogger(__name__)


@dataclass
class SyncComponents:
    """Every collaborator of the order replica sync, built once per process."""

    orders_db: DocumentDatabase
    customers_db: DocumentDatabase
    order_store: OrderStore
    customer_store: CustomerStore
    record_store: SyncRecordStore
    sync_client: ISyncClient
    coordinator: SyncCoordinator
    reconciler: Reconciler
    alert_recorder: AlertRecorder

    async def start(self) -> None:
        if isinstance(self.sync_client, HttpSyncClient):
            await self.sync_client.initialize()

    async def close(self) -> None:
        await self.coordinator.shutdown()
        if isinstance(self.sync_client, HttpSyncClient):
            await self.sync_client.close()


def create_sync_components(
    settings: Optional[Settings] = None,
    sync_client: Optional[ISyncClient] = None,
    retry_policy: Optional[RetryPolicy] = None,
    alert_recorder: Optional[AlertRecorder] = None,
    lock_backend: Optional[LockBackend] = None,
    redis_client: Any = None,
) -> SyncComponents:
    """
    Build the sync components from settings.

    Args:
        settings: Settings to use, the global ones when omitted
        sync_client: Explicit client; otherwise chosen by SYNC_CLIENT_MODE
        retry_policy: Explicit policy; otherwise built from SYNC_* settings
        alert_recorder: Alert history, the global one when omitted
        lock_backend: Lock backend, the global one when omitted
        redis_client: redis.asyncio client for reconcile checkpoints

    Returns:
        SyncComponents: Wired components
    """
    settings = settings or get_settings()
    if alert_recorder is None:
        alert_recorder = get_alert_recorder()
    alert_sender = functools.partial(send_sync_alert, recorder=alert_recorder)
    retry_policy = retry_policy or create_sync_retry_policy()

    orders_db = DocumentDatabase("orders")
    customers_db = DocumentDatabase("customers")
    order_store = OrderStore(orders_db, OrderValidator())
    record_store = SyncRecordStore(orders_db)
    customer_store = CustomerStore(customers_db)

    local_customer_side = settings.SYNC_CLIENT_MODE == "local"
    if sync_client is None:
        if local_customer_side:
            sync_client = LocalSyncClient(customer_store)
        else:
            sync_client = HttpSyncClient(
                base_url=settings.customer_service_base_url,
                timeout_seconds=settings.SYNC_REQUEST_TIMEOUT_SECONDS,
            )

    coordinator = SyncCoordinator(
        order_store=order_store,
        record_store=record_store,
        sync_client=sync_client,
        retry_policy=retry_policy,
        alert_sender=alert_sender,
        propagation_timeout=settings.SYNC_REQUEST_TIMEOUT_SECONDS,
        retry_in_background=settings.SYNC_RETRY_IN_BACKGROUND,
        lock_backend=lock_backend,
    )

    reconciler = Reconciler(
        order_store=order_store,
        customer_store=customer_store if local_customer_side else None,
        record_store=record_store,
        sync_client=sync_client,
        retry_policy=retry_policy,
        alert_sender=alert_sender,
        checkpoint=ReconcileCheckpointManager(
            redis_client=redis_client,
            checkpoint_dir=settings.RECONCILE_CHECKPOINT_DIR,
        ),
        grace_period_seconds=settings.RECONCILE_GRACE_PERIOD_SECONDS,
        batch_size=settings.RECONCILE_BATCH_SIZE,
        max_duration_seconds=settings.RECONCILE_MAX_DURATION_SECONDS,
        retention_seconds=settings.SYNC_RECORD_RETENTION_SECONDS,
        propagation_timeout=settings.SYNC_REQUEST_TIMEOUT_SECONDS,
        lock_backend=lock_backend,
    )

    logger.info(
        f"Sync components created - client: {type(sync_client).__name__}, "
        f"retry policy: {retry_policy}, background retries: {settings.SYNC_RETRY_IN_BACKGROUND}"
    )

    return SyncComponents(
        orders_db=orders_db,
        customers_db=customers_db,
        order_store=order_store,
        customer_store=customer_store,
        record_store=record_store,
        sync_client=sync_client,
        coordinator=coordinator,
        reconciler=reconciler,
        alert_recorder=alert_recorder,
    )
