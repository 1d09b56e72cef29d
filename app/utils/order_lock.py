"""
OrderLock - per-order lock for order mutations and replica repairs.

Serializes everything that touches one order id:
- Create/update/delete requests (held until propagation reaches a terminal state)
- Background propagation retries
- Reconciler replays and repairs

Usage:
    from app.utils.order_lock import OrderLock, LockAcquisitionError

    async with OrderLock("9f2c...") as lock:
        # Only one task can execute this block for this order
        await coordinator.update_order(order)
"""

import logging
from typing import Optional

from app.core.config import get_settings
from app.utils.distributed_lock import DistributedLock, LockAcquisitionError, LockBackend

logger = logging.getLogger(__name__)

# Re-export for convenience
__all__ = ["OrderLock", "LockAcquisitionError"]


class OrderLock(DistributedLock):
    """
    Specialized distributed lock for order operations.

    Example:
        ```python
        try:
            async with OrderLock(order_id, wait_timeout=0) as lock:
                await repair_replica(order_id)
        except LockAcquisitionError as e:
            logger.warning(f"Order busy, skipping: {e}")
        ```

    Notes:
        - Lock key format: ``order:{order_id}``
        - Default TTL and wait time come from ORDER_LOCK_TTL_SECONDS and
          ORDER_LOCK_WAIT_SECONDS
        - ``wait_timeout=0`` tries once without waiting (reconciler)
    """

    def __init__(
        self,
        order_id: str,
        timeout_seconds: Optional[float] = None,
        wait_timeout: Optional[float] = None,
        backend: Optional[LockBackend] = None,
    ):
        """
        Initialize order lock.

        Args:
            order_id: Order id to lock
            timeout_seconds: Lock TTL in seconds
            wait_timeout: Maximum seconds to wait for the lock
            backend: Lock backend, the global one when omitted
        """
        settings = get_settings()
        super().__init__(
            lock_key=f"order:{order_id}",
            timeout_seconds=settings.ORDER_LOCK_TTL_SECONDS if timeout_seconds is None else timeout_seconds,
            wait_timeout=settings.ORDER_LOCK_WAIT_SECONDS if wait_timeout is None else wait_timeout,
            backend=backend,
        )

        self.order_id = order_id

    async def __aenter__(self):
        """Acquire lock with enhanced logging for order operations."""
        logger.debug(f"Attempting to acquire lock for order {self.order_id}")
        result = await super().__aenter__()
        logger.debug(f"Lock acquired for order {self.order_id}")
        return result

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Release lock with enhanced logging for order operations."""
        detached = self._detached
        result = await super().__aexit__(exc_type, exc_val, exc_tb)
        if detached:
            logger.debug(f"Lock for order {self.order_id} handed over to background propagation")
        elif exc_type:
            logger.debug(f"Lock released for order {self.order_id} (exception occurred: {exc_type.__name__})")
        else:
            logger.debug(f"Lock released for order {self.order_id}")
        return result
