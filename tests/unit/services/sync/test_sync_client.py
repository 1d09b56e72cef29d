"""Tests unitarios para los clientes de sincronización y la clasificación de errores."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from app.db import CustomerStore, DocumentDatabase
from app.domain.models import Customer, OrderReplica, OrderStatus, SyncOperation
from app.services.sync.sync_client import HttpSyncClient, LocalSyncClient, classify_response
from app.utils.error_handler import PermanentSyncException, RetryableSyncException

REPLICA = OrderReplica(id="O1", customer_id="C1", version=1, status=OrderStatus.CONFIRMED)


def _session(status: int = 200, body: str = "{}", error: Exception = None) -> MagicMock:
    """Sesión aiohttp simulada cuyo ``request`` es un context manager asíncrono."""
    response = MagicMock()
    response.status = status
    response.text = AsyncMock(return_value=body)

    context = MagicMock()
    if error is not None:
        context.__aenter__ = AsyncMock(side_effect=error)
    else:
        context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.request = MagicMock(return_value=context)
    return session


class TestClassifyResponse:
    """Tests para classify_response."""

    @pytest.mark.parametrize("status", [200, 201, 204])
    def test_success_statuses(self, status):
        """Debe aceptar cualquier 2xx."""
        classify_response(SyncOperation.CREATE, status, "", REPLICA)

    @pytest.mark.parametrize("status", [408, 425, 429, 500, 502, 503])
    def test_retryable_statuses(self, status):
        """Debe clasificar 408, 425, 429 y 5xx como reintentables."""
        with pytest.raises(RetryableSyncException) as exc_info:
            classify_response(SyncOperation.UPDATE, status, "busy", REPLICA)

        assert exc_info.value.response_code == status
        assert exc_info.value.is_retryable

    @pytest.mark.parametrize("status", [400, 404, 409, 422])
    def test_permanent_statuses(self, status):
        """Debe clasificar el resto de 4xx como permanentes."""
        with pytest.raises(PermanentSyncException) as exc_info:
            classify_response(SyncOperation.CREATE, status, "unknown customer", REPLICA)

        assert not exc_info.value.is_retryable

    def test_delete_not_found_counts_as_success(self):
        """Debe tratar un 404 en DELETE como réplica ya ausente."""
        classify_response(SyncOperation.DELETE, 404, "", REPLICA)


class TestHttpSyncClient:
    """Tests para HttpSyncClient con una sesión simulada."""

    @pytest.mark.asyncio
    async def test_create_posts_replica_with_idempotency_key(self):
        """Debe enviar POST con el payload de la réplica y el Idempotency-Key."""
        session = _session(status=201)
        client = HttpSyncClient(base_url="http://customers:8081/", timeout_seconds=1, session=session)

        await client.propagate(SyncOperation.CREATE, REPLICA)

        args, kwargs = session.request.call_args
        assert args == ("POST", "http://customers:8081/api/v1/customerOrders/C1")
        assert kwargs["json"] == REPLICA.to_dict()
        assert kwargs["headers"] == {"Idempotency-Key": "O1:CREATE"}

    @pytest.mark.asyncio
    async def test_delete_targets_replica_url(self):
        """Debe enviar DELETE sin cuerpo a la URL de la réplica."""
        session = _session(status=404)
        client = HttpSyncClient(base_url="http://customers:8081", timeout_seconds=1, session=session)

        await client.propagate(SyncOperation.DELETE, REPLICA)

        args, kwargs = session.request.call_args
        assert args == ("DELETE", "http://customers:8081/api/v1/customerOrders/C1/O1")
        assert kwargs["json"] is None

    @pytest.mark.asyncio
    async def test_network_error_is_retryable(self):
        """Debe convertir errores de red en RetryableSyncException."""
        session = _session(error=aiohttp.ClientConnectionError("refused"))
        client = HttpSyncClient(base_url="http://customers:8081", timeout_seconds=1, session=session)

        with pytest.raises(RetryableSyncException):
            await client.propagate(SyncOperation.UPDATE, REPLICA)

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(self):
        """Debe convertir un timeout en RetryableSyncException marcada como timeout."""
        session = _session(error=asyncio.TimeoutError())
        client = HttpSyncClient(base_url="http://customers:8081", timeout_seconds=1, session=session)

        with pytest.raises(RetryableSyncException) as exc_info:
            await client.propagate(SyncOperation.UPDATE, REPLICA)

        assert exc_info.value.timed_out

    @pytest.mark.asyncio
    async def test_close_keeps_external_session(self):
        """No debe cerrar una sesión que no creó."""
        session = _session()
        session.close = AsyncMock()
        client = HttpSyncClient(base_url="http://customers:8081", timeout_seconds=1, session=session)

        await client.close()

        session.close.assert_not_awaited()


class TestLocalSyncClient:
    """Tests para LocalSyncClient sobre un CustomerStore en memoria."""

    @pytest.mark.asyncio
    async def test_create_replayed_twice_leaves_one_replica(self):
        """Debe dejar exactamente una réplica al repetir CREATE."""
        store = CustomerStore(DocumentDatabase("customers"))
        await store.create_customer(Customer(id="C1"))
        client = LocalSyncClient(store)

        await client.propagate(SyncOperation.CREATE, REPLICA)
        await client.propagate(SyncOperation.CREATE, REPLICA)

        assert [replica.id for replica in await store.list_replicas("C1")] == ["O1"]

    @pytest.mark.asyncio
    async def test_delete_replayed_after_removal_succeeds(self):
        """Debe aceptar un DELETE repetido cuando la réplica ya no existe."""
        store = CustomerStore(DocumentDatabase("customers"))
        await store.create_customer(Customer(id="C1"))
        client = LocalSyncClient(store)
        await client.propagate(SyncOperation.CREATE, REPLICA)

        await client.propagate(SyncOperation.DELETE, REPLICA)
        await client.propagate(SyncOperation.DELETE, REPLICA)

        assert await store.list_replicas("C1") == []

    @pytest.mark.asyncio
    async def test_unknown_customer_is_permanent(self):
        """Debe clasificar un cliente inexistente como error permanente."""
        client = LocalSyncClient(CustomerStore(DocumentDatabase("customers")))

        with pytest.raises(PermanentSyncException) as exc_info:
            await client.propagate(SyncOperation.CREATE, REPLICA)

        assert exc_info.value.response_code == 404
