"""
Sync record repository.

Records live in the same database as the orders so that an order write
and the opening of its record commit in one local transaction.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from app.db.base import BaseRepository, log_operation
from app.domain.models.sync_record import SyncOperation, SyncRecord, SyncStatus
from app.utils.error_handler import NotFoundException

logger = logging.getLogger(__name__)


class SyncRecordStore(BaseRepository):
    """
    Repository for SyncRecord documents keyed by ``<order_id>:<epoch>``.
    """

    collection_name = "sync_records"

    def _records_for_order(self, order_id: str) -> list[SyncRecord]:
        # Order ids may contain ":", so the key prefix alone is ambiguous
        records = [
            SyncRecord.from_dict(document)
            for document in self.collection.values()
            if document["order_id"] == order_id
        ]
        return sorted(records, key=lambda record: record.epoch)

    @log_operation()
    async def open(self, order_id: str, operation: SyncOperation, customer_id: str) -> SyncRecord:
        """
        Open a PENDING record for a new mutation of ``order_id``.

        The epoch is one more than the highest epoch recorded for the order.
        """
        existing = self._records_for_order(order_id)
        epoch = existing[-1].epoch + 1 if existing else 1
        record = SyncRecord(order_id=order_id, epoch=epoch, operation=operation, customer_id=customer_id)
        self.collection.put(record.key, record.to_dict())
        logger.debug(f"Sync record {record.key} opened ({operation.value} -> customer {customer_id})")
        return record

    async def save(self, record: SyncRecord) -> SyncRecord:
        self.collection.put(record.key, record.to_dict())
        return record

    async def get(self, order_id: str, epoch: int) -> Optional[SyncRecord]:
        document = self.collection.get(SyncRecord.make_key(order_id, epoch))
        return SyncRecord.from_dict(document) if document is not None else None

    async def require(self, order_id: str, epoch: int) -> SyncRecord:
        record = await self.get(order_id, epoch)
        if record is None:
            raise NotFoundException(
                message=f"Sync record {order_id}:{epoch} not found",
                resource="sync_record",
                resource_id=SyncRecord.make_key(order_id, epoch),
            )
        return record

    async def list_for_order(self, order_id: str) -> list[SyncRecord]:
        return self._records_for_order(order_id)

    async def latest_for_order(self, order_id: str) -> Optional[SyncRecord]:
        records = self._records_for_order(order_id)
        return records[-1] if records else None

    async def latest_delivered_epoch(self, order_id: str) -> int:
        """Highest DELIVERED epoch of the order, 0 if none."""
        delivered = [record.epoch for record in self._records_for_order(order_id) if record.is_delivered]
        return max(delivered, default=0)

    async def list_by_status(
        self,
        statuses: Iterable[SyncStatus],
        older_than: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[SyncRecord]:
        """
        Records in any of ``statuses``, oldest update first.

        Args:
            statuses: Statuses to include
            older_than: Only records whose ``updated_at`` is at or before this instant
            limit: Maximum number of records
        """
        wanted = set(statuses)
        records = [
            record
            for record in (SyncRecord.from_dict(document) for document in self.collection.values())
            if record.status in wanted and (older_than is None or record.updated_at <= older_than)
        ]
        records.sort(key=lambda record: (record.updated_at, record.key))
        return records[:limit] if limit is not None else records

    async def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in SyncStatus}
        for document in self.collection.values():
            counts[document["status"]] = counts.get(document["status"], 0) + 1
        return counts

    @log_operation()
    async def purge_delivered(self, older_than: datetime) -> int:
        """
        Delete DELIVERED records delivered at or before ``older_than``.

        The most recent record of each order is kept so epochs keep increasing.

        Returns:
            int: Number of records deleted
        """
        latest_keys: dict[str, SyncRecord] = {}
        candidates: list[SyncRecord] = []
        for document in self.collection.values():
            record = SyncRecord.from_dict(document)
            latest = latest_keys.get(record.order_id)
            if latest is None or record.epoch > latest.epoch:
                latest_keys[record.order_id] = record
            if record.is_delivered and (record.delivered_at or record.updated_at) <= older_than:
                candidates.append(record)

        purged = 0
        for record in candidates:
            if latest_keys[record.order_id].epoch == record.epoch:
                continue
            self.collection.delete(record.key)
            purged += 1

        if purged:
            logger.info(f"Purged {purged} delivered sync records older than {older_than.isoformat()}")
        return purged
