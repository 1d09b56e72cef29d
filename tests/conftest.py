"""Fixtures compartidos: componentes de sincronización en memoria y clientes simulados."""

from decimal import Decimal
from typing import List, Optional

import pytest

from app.core.config import Settings
from app.core.metrics import clear_metrics
from app.domain.models import Customer, Order, OrderReplica, ProductLine, SyncOperation
from app.services.sync.factory import create_sync_components
from app.services.sync.sync_client import LocalSyncClient
from app.utils.distributed_lock import LocalLockBackend, reset_lock_backend
from app.utils.notifications import AlertRecorder
from app.utils.retry_handler import RetryPolicy


class ScriptedSyncClient:
    """
    Cliente que lanza las excepciones de ``failures`` en orden y, agotada
    la lista, delega en un LocalSyncClient.
    """

    def __init__(self, failures: Optional[List[Exception]] = None, always_fail: Optional[Exception] = None):
        self.failures = list(failures or [])
        self.always_fail = always_fail
        self.delegate: Optional[LocalSyncClient] = None
        self.calls: List[tuple] = []

    async def propagate(self, operation: SyncOperation, replica: OrderReplica) -> None:
        self.calls.append((operation, replica.id, replica.version))
        if self.always_fail is not None:
            raise self.always_fail
        if self.failures:
            raise self.failures.pop(0)
        await self.delegate.propagate(operation, replica)


def build_components(client: Optional[ScriptedSyncClient] = None, max_attempts: int = 3, **overrides):
    settings = Settings(
        SYNC_CLIENT_MODE="local",
        SYNC_RETRY_IN_BACKGROUND=overrides.pop("retry_in_background", False),
        RECONCILE_GRACE_PERIOD_SECONDS=0,
        SYNC_REQUEST_TIMEOUT_SECONDS=2.0,
        **overrides,
    )
    components = create_sync_components(
        settings=settings,
        sync_client=client,
        retry_policy=RetryPolicy(max_attempts=max_attempts, base_delay=0, jitter=False),
        alert_recorder=AlertRecorder(),
        lock_backend=LocalLockBackend(),
    )
    if client is not None:
        client.delegate = LocalSyncClient(components.customer_store)
    return components


def make_order(customer_id: str = "C1", order_id: Optional[str] = None, **fields) -> Order:
    products = fields.pop(
        "products",
        [ProductLine(product_id="P1", name="Camisa", quantity=2, unit_price=Decimal("19.99"))],
    )
    return Order(
        id=order_id,
        customer_id=customer_id,
        payment_details=fields.pop("payment_details", "card-4242"),
        products=products,
        **fields,
    )


@pytest.fixture(autouse=True)
def reset_sync_globals():
    """Aísla el backend de locks global y las métricas entre tests."""
    reset_lock_backend()
    clear_metrics()
    yield
    reset_lock_backend()


@pytest.fixture
def components():
    """Componentes con LocalSyncClient, reintentos inline y sin delays."""
    return build_components()


@pytest.fixture
def scripted_components():
    """Fábrica de componentes con un ScriptedSyncClient."""

    def factory(failures=None, always_fail=None, max_attempts: int = 3, **overrides):
        client = ScriptedSyncClient(failures=failures, always_fail=always_fail)
        return build_components(client, max_attempts=max_attempts, **overrides), client

    return factory


@pytest.fixture
def order_factory():
    return make_order


@pytest.fixture
def customer_c1() -> Customer:
    return Customer(id="C1", name="Ana", email="ana@example.com")
