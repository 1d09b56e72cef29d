"""
Single propagation attempt shared by the coordinator and the reconciler.

One attempt = count it on the record, call the sync client under a
bounded timeout, classify the outcome and persist the resulting status.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from app.core.logging_config import LogContext, log_sync_operation
from app.core.metrics import record_propagation_metric
from app.db.sync_record_store import SyncRecordStore
from app.domain.models import OrderReplica, SyncOperation, SyncRecord, SyncStatus
from app.services.sync.interfaces import ISyncClient
from app.utils.error_handler import (
    AppException,
    PermanentSyncException,
    RetryableSyncException,
    SyncException,
)
from app.utils.notifications import send_sync_alert
from app.utils.retry_handler import RetryPolicy

logger = logging.getLogger(__name__)


class Propagator:
    """
    Runs propagation attempts and moves sync records through their states.
    """

    def __init__(
        self,
        record_store: SyncRecordStore,
        sync_client: ISyncClient,
        retry_policy: RetryPolicy,
        propagation_timeout: float,
        alert_sender: Optional[Callable[..., Any]] = None,
    ):
        """
        Args:
            record_store: Sync record repository
            sync_client: Outbound channel to the customer side
            retry_policy: Decides whether a failed attempt is retried
            propagation_timeout: Upper bound of one remote call, in seconds
            alert_sender: Coroutine function called on exhaustion
        """
        self.record_store = record_store
        self.sync_client = sync_client
        self.retry_policy = retry_policy
        self.propagation_timeout = propagation_timeout
        self.alert_sender = alert_sender or send_sync_alert

    async def _call_client(self, operation: SyncOperation, replica: OrderReplica) -> None:
        try:
            await asyncio.wait_for(self.sync_client.propagate(operation, replica), timeout=self.propagation_timeout)
        except asyncio.TimeoutError as e:
            raise RetryableSyncException(
                message=f"Propagation of {operation.value} for order {replica.id} timed out "
                f"after {self.propagation_timeout}s",
                operation=operation.value,
                order_id=replica.id,
                customer_id=replica.customer_id,
                timed_out=True,
            ) from e

    async def attempt(
        self,
        record: SyncRecord,
        replica: OrderReplica,
        operation: Optional[SyncOperation] = None,
        source: str = "coordinator",
        alert_on_exhaustion: bool = True,
    ) -> SyncRecord:
        """
        Make one propagation attempt for a PENDING record.

        Args:
            record: Record in PENDING status
            replica: Replica payload to send
            operation: Operation to send, the record's own by default
            source: Caller, for logs and metrics
            alert_on_exhaustion: Whether reaching EXHAUSTED raises an operator alert

        Returns:
            SyncRecord: The persisted record, DELIVERED, FAILED or EXHAUSTED
        """
        if record.status != SyncStatus.PENDING:
            raise ValueError(f"Sync record {record.key} must be PENDING to attempt, got {record.status.value}")

        operation = operation or record.operation
        record.record_attempt()
        await self.record_store.save(record)

        error: Optional[SyncException] = None
        start = time.monotonic()
        with LogContext(order_id=record.order_id, epoch=record.epoch):
            try:
                await self._call_client(operation, replica)
            except SyncException as e:
                error = e
            except AppException as e:
                error = (RetryableSyncException if e.is_retryable else PermanentSyncException)(
                    message=e.message, operation=operation.value, order_id=record.order_id
                )
            except Exception as e:
                logger.exception(f"Unexpected error propagating {operation.value} of order {record.order_id}")
                error = RetryableSyncException(
                    message=f"{type(e).__name__}: {e}", operation=operation.value, order_id=record.order_id
                )
            duration = time.monotonic() - start

            if error is None:
                record.mark_delivered()
            elif self.retry_policy.should_retry(error, record.attempts):
                record.mark_failed(error.message)
            else:
                record.mark_exhausted(error.message)

            await self.record_store.save(record)

            log_sync_operation(
                operation.value,
                record.order_id,
                record.status.value,
                epoch=record.epoch,
                attempts=record.attempts,
                source=source,
                duration_seconds=round(duration, 4),
                error=record.last_error if error is not None else None,
            )
            record_propagation_metric(
                operation=operation.value,
                status=record.status.value,
                duration_seconds=duration,
                attempts=record.attempts,
                source=source,
            )

        if record.status == SyncStatus.EXHAUSTED and alert_on_exhaustion:
            await self.alert_sender(
                "sync_exhausted",
                f"Order {record.order_id} epoch {record.epoch} could not be propagated to customer "
                f"{record.customer_id} after {record.attempts} attempts",
                {
                    "order_id": record.order_id,
                    "epoch": record.epoch,
                    "operation": operation.value,
                    "customer_id": record.customer_id,
                    "attempts": record.attempts,
                    "last_error": record.last_error,
                    "permanent": error is not None and not error.is_retryable,
                },
            )

        return record
