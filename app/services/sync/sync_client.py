"""
Sync clients: propagate replica changes to the customer side.

- HttpSyncClient: calls the customer service replica endpoints over HTTP
- LocalSyncClient: writes straight into a CustomerStore in the same process

Both honour the same contract: CREATE/UPDATE are upserts, DELETE of a
missing replica succeeds, and failures are classified as retryable or
permanent. Neither client retries internally.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp
from aiohttp import ClientTimeout

from app.core.config import get_settings
from app.db.customer_store import CustomerStore
from app.domain.models import OrderReplica, SyncOperation
from app.utils.error_handler import NotFoundException, PermanentSyncException, RetryableSyncException

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 425, 429})


def classify_response(operation: SyncOperation, status: int, body: str, replica: OrderReplica) -> None:
    """
    Map a customer service response to the sync error taxonomy.

    Raises:
        RetryableSyncException: For 408, 425, 429 and 5xx
        PermanentSyncException: For any other non-2xx status
    """
    if 200 <= status < 300:
        return
    if operation == SyncOperation.DELETE and status == 404:
        logger.debug(f"Replica {replica.id} already absent on customer {replica.customer_id}")
        return

    context = {"order_id": replica.id, "customer_id": replica.customer_id, "response_code": status}
    message = f"Customer service answered HTTP {status} to {operation.value} of order {replica.id}: {body[:200]}"

    if status in RETRYABLE_STATUS_CODES or status >= 500:
        raise RetryableSyncException(message=message, operation=operation.value, **context)
    raise PermanentSyncException(message=message, operation=operation.value, **context)


class HttpSyncClient:
    """
    HTTP client for the customer service replica endpoints.

    Routes:
        CREATE -> POST   {base}/api/v1/customerOrders/{customer_id}
        UPDATE -> PUT    {base}/api/v1/customerOrders/{customer_id}
        DELETE -> DELETE {base}/api/v1/customerOrders/{customer_id}/{order_id}

    Every request carries ``Idempotency-Key: <order id>:<operation>``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize the HTTP sync client.

        Args:
            base_url: Customer service base URL
            timeout_seconds: Total timeout of one request
            session: Pre-built session (tests); created by ``initialize`` otherwise
        """
        self.settings = get_settings()
        self.base_url = (base_url or self.settings.customer_service_base_url).rstrip("/")
        self.timeout_seconds = timeout_seconds or self.settings.SYNC_REQUEST_TIMEOUT_SECONDS
        self.session = session
        self._owns_session = session is None

        logger.info(f"Initialized HTTP sync client for {self.base_url}")

    async def initialize(self):
        """Create the shared HTTP session."""
        if self.session is not None:
            return

        timeout = ClientTimeout(total=self.timeout_seconds)
        connector = aiohttp.TCPConnector(limit=100, limit_per_host=30)
        self.session = aiohttp.ClientSession(
            timeout=timeout,
            connector=connector,
            headers={
                "Content-Type": "application/json",
                "User-Agent": f"{self.settings.APP_NAME}/{self.settings.APP_VERSION}",
            },
        )
        self._owns_session = True
        logger.info("✅ HTTP sync client session created")

    async def close(self):
        """Close the HTTP session and clean up resources."""
        if self.session and self._owns_session:
            await self.session.close()
            logger.info("HTTP sync client closed")
        self.session = None

    def _route(self, operation: SyncOperation, replica: OrderReplica) -> tuple[str, str, Optional[Dict[str, Any]]]:
        collection_url = f"{self.base_url}/api/v1/customerOrders/{replica.customer_id}"
        if operation == SyncOperation.CREATE:
            return "POST", collection_url, replica.to_dict()
        if operation == SyncOperation.UPDATE:
            return "PUT", collection_url, replica.to_dict()
        return "DELETE", f"{collection_url}/{replica.id}", None

    async def propagate(self, operation: SyncOperation, replica: OrderReplica) -> None:
        """
        Send one replica change to the customer service.

        Raises:
            RetryableSyncException: Network error, timeout or transient HTTP status
            PermanentSyncException: Non-retryable HTTP status
        """
        if self.session is None:
            await self.initialize()

        method, url, payload = self._route(operation, replica)
        headers = {"Idempotency-Key": f"{replica.id}:{operation.value}"}

        try:
            async with self.session.request(method, url, json=payload, headers=headers) as response:
                status = response.status
                body = await response.text()
        except asyncio.TimeoutError as e:
            raise RetryableSyncException(
                message=f"Timeout after {self.timeout_seconds}s propagating {operation.value} of order {replica.id}",
                operation=operation.value,
                order_id=replica.id,
                customer_id=replica.customer_id,
                timed_out=True,
            ) from e
        except aiohttp.ClientError as e:
            raise RetryableSyncException(
                message=f"Network error propagating {operation.value} of order {replica.id}: {e}",
                operation=operation.value,
                order_id=replica.id,
                customer_id=replica.customer_id,
            ) from e

        classify_response(operation, status, body, replica)
        logger.debug(f"{method} {url} -> {status}")


class LocalSyncClient:
    """
    In-process sync client writing directly into a CustomerStore.

    Used when the order and customer sides run in the same process.
    """

    def __init__(self, customer_store: CustomerStore):
        self.customer_store = customer_store

    async def propagate(self, operation: SyncOperation, replica: OrderReplica) -> None:
        """
        Apply one replica change to the local customer store.

        Raises:
            PermanentSyncException: If the target customer does not exist
        """
        if operation == SyncOperation.DELETE:
            await self.customer_store.remove_replica(replica.customer_id, replica.id)
            return

        try:
            await self.customer_store.add_replica(replica.customer_id, replica)
        except NotFoundException as e:
            raise PermanentSyncException(
                message=f"Customer {replica.customer_id} does not exist",
                operation=operation.value,
                order_id=replica.id,
                customer_id=replica.customer_id,
                response_code=404,
            ) from e
