"""Tests unitarios para el Reconciler: replay de registros, pasada de diferencias y acciones de operador."""

from datetime import timedelta

import pytest

from app.domain.models import Customer, OrderReplica, OrderStatus, SyncStatus
from app.services.sync.reconciler import Reconciler
from app.utils.error_handler import NotFoundException, PermanentSyncException, ValidationException
from app.utils.order_lock import OrderLock


def _permanent() -> PermanentSyncException:
    return PermanentSyncException(message="HTTP 400 from customer service", operation="CREATE", response_code=400)


class TestDiffPass:
    """Tests para la detección y reparación de divergencias."""

    @pytest.mark.asyncio
    async def test_missing_replica_is_repaired_then_fixed_point(self, components, order_factory):
        """Debe reparar una réplica faltante y no encontrar nada en la siguiente pasada."""
        await components.customer_store.create_customer(Customer(id="C1"))
        await components.coordinator.create_order(order_factory(order_id="O1"))
        await components.customer_store.remove_replica("C1", "O1")

        first = await components.reconciler.run_once()
        second = await components.reconciler.run_once()

        assert first["divergences"] == 1
        assert first["repairs"] == 1
        assert first["completed"] is True
        assert (await components.customer_store.get_customer("C1")).order_ids == ["O1"]
        assert second["divergences"] == 0
        assert second["repairs"] == 0

    @pytest.mark.asyncio
    async def test_stale_replica_is_replaced(self, components, order_factory):
        """Debe reemplazar una réplica con versión o estado desactualizados."""
        await components.customer_store.create_customer(Customer(id="C1"))
        created = await components.coordinator.create_order(order_factory(order_id="O1"))
        await components.order_store.update(created.order.copy(status=OrderStatus.SHIPPED))

        report = await components.reconciler.run_once()

        replica = await components.customer_store.get_replica("C1", "O1")
        assert report["repairs"] == 1
        assert (replica.version, replica.status) == (1, OrderStatus.SHIPPED)

    @pytest.mark.asyncio
    async def test_replica_ahead_of_order_is_rewritten(self, components, order_factory):
        """Debe imponer el estado de la orden aunque la réplica tenga una versión mayor."""
        await components.customer_store.create_customer(Customer(id="C1"))
        await components.coordinator.create_order(order_factory(order_id="O1"))
        await components.customer_store.add_replica("C1", OrderReplica(id="O1", customer_id="C1", version=7))

        await components.reconciler.run_once()

        assert (await components.customer_store.get_replica("C1", "O1")).version == 0

    @pytest.mark.asyncio
    async def test_orphan_replica_is_removed(self, components):
        """Debe eliminar réplicas sin orden viva."""
        await components.customer_store.create_customer(Customer(id="C1"))
        await components.customer_store.add_replica("C1", OrderReplica(id="O9", customer_id="C1"))

        report = await components.reconciler.run_once()

        assert report["repairs"] == 1
        assert await components.customer_store.list_replicas("C1") == []

    @pytest.mark.asyncio
    async def test_replica_under_wrong_customer_is_removed(self, components, order_factory):
        """Debe eliminar la réplica guardada en un cliente que no es el dueño."""
        for customer_id in ("C1", "C2"):
            await components.customer_store.create_customer(Customer(id=customer_id))
        await components.coordinator.create_order(order_factory(order_id="O1"))
        await components.customer_store.add_replica("C2", OrderReplica(id="O1", customer_id="C2"))

        await components.reconciler.run_once()

        assert (await components.customer_store.get_customer("C1")).order_ids == ["O1"]
        assert (await components.customer_store.get_customer("C2")).order_ids == []

    @pytest.mark.asyncio
    async def test_missing_customer_alerts_once(self, components, order_factory):
        """Debe alertar una sola vez por una divergencia no reparable."""
        await components.coordinator.create_order(order_factory(customer_id="C404", order_id="O1"))

        first = await components.reconciler.run_once()
        await components.reconciler.run_once()

        assert first["unrepairable"] == 1
        assert len(components.alert_recorder.list(alert_type="unrepairable_divergence")) == 1
        assert len(components.alert_recorder.list(alert_type="sync_exhausted")) == 1
        assert (await components.record_store.get("O1", 1)).status == SyncStatus.EXHAUSTED

    @pytest.mark.asyncio
    async def test_busy_order_is_skipped(self, components, order_factory):
        """Debe saltar la reparación si la orden está bloqueada."""
        await components.customer_store.create_customer(Customer(id="C1"))
        await components.coordinator.create_order(order_factory(order_id="O1"))
        await components.customer_store.remove_replica("C1", "O1")

        holder = OrderLock("O1", backend=components.reconciler.lock_backend)
        assert await holder.acquire()
        try:
            report = await components.reconciler.run_once()
        finally:
            await holder.release()

        assert report["skipped_busy"] == 1
        assert report["repairs"] == 0
        assert await components.customer_store.list_replicas("C1") == []

    @pytest.mark.asyncio
    async def test_interrupted_pass_resumes_from_checkpoint(self, components, order_factory):
        """Debe guardar el cursor al agotar el tiempo y reanudar en la siguiente pasada."""
        await components.customer_store.create_customer(Customer(id="C1"))
        await components.coordinator.create_order(order_factory(order_id="O1"))
        await components.customer_store.remove_replica("C1", "O1")
        reconciler = components.reconciler

        reconciler.max_duration_seconds = 0
        interrupted = await reconciler.run_once()
        reconciler.max_duration_seconds = 60
        resumed = await reconciler.run_once()

        assert interrupted["completed"] is False
        assert resumed["resumed_from"] == {"phase": "orders", "cursor": None}
        assert resumed["completed"] is True
        assert resumed["repairs"] == 1
        assert await reconciler.checkpoint.load_checkpoint() is None

    @pytest.mark.asyncio
    async def test_diff_pass_disabled_without_customer_store(self, components):
        """Debe omitir la pasada de diferencias si el lado cliente es remoto."""
        reconciler = Reconciler(
            order_store=components.order_store,
            customer_store=None,
            record_store=components.record_store,
            sync_client=components.sync_client,
            retry_policy=components.coordinator.retry_policy,
            grace_period_seconds=0,
            lock_backend=components.reconciler.lock_backend,
        )

        report = await reconciler.run_once()

        assert report["diff_enabled"] is False
        assert report["completed"] is True

    @pytest.mark.asyncio
    async def test_overlapping_run_is_skipped(self, components):
        """Debe rechazar una pasada mientras otra está en curso."""
        reconciler = components.reconciler

        async with reconciler._run_lock:
            report = await reconciler.run_once()

        assert report == {"skipped": True, "reason": "already_running"}


class TestRecordReplay:
    """Tests para el replay de SyncRecords pendientes, fallidos y agotados."""

    @pytest.mark.asyncio
    async def test_exhausted_record_is_replayed_when_client_recovers(self, scripted_components, order_factory):
        """Debe entregar un registro EXHAUSTED cuando el lado cliente vuelve a responder."""
        components, client = scripted_components(always_fail=_permanent())
        await components.customer_store.create_customer(Customer(id="C1"))
        await components.coordinator.create_order(order_factory(order_id="O1"))
        client.always_fail = None

        report = await components.reconciler.run_once()

        record = await components.record_store.get("O1", 1)
        assert report["records_replayed"] == 1
        assert report["records_delivered"] == 1
        assert record.status == SyncStatus.DELIVERED
        assert record.attempts == 2
        assert (await components.customer_store.get_customer("C1")).order_ids == ["O1"]

    @pytest.mark.asyncio
    async def test_replay_after_delete_removes_replica(self, scripted_components, order_factory):
        """Debe enviar DELETE cuando la orden ya no existe."""
        components, client = scripted_components()
        await components.customer_store.create_customer(Customer(id="C1"))
        await components.coordinator.create_order(order_factory(order_id="O1"))
        client.always_fail = _permanent()
        await components.coordinator.delete_order("O1")
        client.always_fail = None

        report = await components.reconciler.run_once()

        assert report["records_delivered"] == 1
        assert (await components.record_store.get("O1", 2)).status == SyncStatus.DELIVERED
        assert await components.customer_store.list_replicas("C1") == []

    @pytest.mark.asyncio
    async def test_superseded_record_is_closed_without_sending(self, scripted_components, order_factory):
        """Debe cerrar un registro superado por una época posterior ya entregada."""
        components, client = scripted_components(failures=[_permanent()])
        await components.customer_store.create_customer(Customer(id="C1"))
        created = await components.coordinator.create_order(order_factory(order_id="O1"))
        await components.coordinator.update_order(created.order.copy(status=OrderStatus.CONFIRMED))
        calls_before = len(client.calls)

        report = await components.reconciler.run_once()

        record = await components.record_store.get("O1", 1)
        assert report["records_superseded"] == 1
        assert record.status == SyncStatus.DELIVERED
        assert record.note == "superseded by epoch 2"
        assert len(client.calls) == calls_before

    @pytest.mark.asyncio
    async def test_record_is_not_superseded_by_order_sharing_key_prefix(self, scripted_components, order_factory):
        """Debe reenviar el registro de "a" aunque "a:x" tenga épocas posteriores entregadas."""
        components, client = scripted_components(failures=[_permanent()])
        await components.customer_store.create_customer(Customer(id="C1"))
        await components.coordinator.create_order(order_factory(order_id="a"))
        created = await components.coordinator.create_order(order_factory(order_id="a:x"))
        await components.coordinator.update_order(created.order.copy(status=OrderStatus.CONFIRMED))
        calls_before = len(client.calls)

        report = await components.reconciler.run_once()

        record = await components.record_store.get("a", 1)
        assert report["records_superseded"] == 0
        assert (record.status, record.note) == (SyncStatus.DELIVERED, None)
        assert [call[1] for call in client.calls[calls_before:]] == ["a"]
        assert (await components.customer_store.get_customer("C1")).order_ids == ["a", "a:x"]

    @pytest.mark.asyncio
    async def test_replayed_exhaustion_does_not_alert_again(self, components, order_factory):
        """No debe repetir la alerta si un registro EXHAUSTED vuelve a agotarse."""
        await components.coordinator.create_order(order_factory(customer_id="C404", order_id="O1"))

        report = await components.reconciler.run_once()

        assert report["records_exhausted"] == 1
        assert len(components.alert_recorder.list(alert_type="sync_exhausted")) == 1

    @pytest.mark.asyncio
    async def test_grace_period_defers_recent_records(self, scripted_components, order_factory):
        """No debe reintentar registros más recientes que el periodo de gracia."""
        components, client = scripted_components(always_fail=_permanent())
        await components.customer_store.create_customer(Customer(id="C1"))
        await components.coordinator.create_order(order_factory(order_id="O1"))
        client.always_fail = None
        components.reconciler.grace_period = timedelta(seconds=3600)

        report = await components.reconciler.run_once()

        assert report["records_replayed"] == 0
        assert (await components.record_store.get("O1", 1)).status == SyncStatus.EXHAUSTED


class TestOperatorActions:
    """Tests para rebuild, replay y resolve manuales."""

    @pytest.mark.asyncio
    async def test_rebuild_customer(self, components, order_factory):
        """Debe forzar el conjunto de réplicas al estado autoritativo."""
        await components.customer_store.create_customer(Customer(id="C1"))
        await components.coordinator.create_order(order_factory(order_id="O1"))
        await components.customer_store.remove_replica("C1", "O1")
        await components.customer_store.add_replica("C1", OrderReplica(id="O9", customer_id="C1"))

        customer = await components.reconciler.rebuild_customer("C1")

        assert customer.order_ids == ["O1"]
        assert not await components.reconciler.lock_backend.is_locked("order:O1")

    @pytest.mark.asyncio
    async def test_rebuild_unknown_customer(self, components):
        """Debe lanzar NotFoundException para un cliente inexistente."""
        with pytest.raises(NotFoundException):
            await components.reconciler.rebuild_customer("C404")

    @pytest.mark.asyncio
    async def test_replay_record_now(self, scripted_components, order_factory):
        """Debe reintentar un registro inmediatamente, sin esperar el periodo de gracia."""
        components, client = scripted_components(always_fail=_permanent())
        await components.customer_store.create_customer(Customer(id="C1"))
        await components.coordinator.create_order(order_factory(order_id="O1"))
        client.always_fail = None

        record = await components.reconciler.replay_record("O1", 1)

        assert record.status == SyncStatus.DELIVERED

    @pytest.mark.asyncio
    async def test_replay_delivered_record_is_rejected(self, components, order_factory):
        """Debe rechazar el replay de un registro ya entregado."""
        await components.customer_store.create_customer(Customer(id="C1"))
        await components.coordinator.create_order(order_factory(order_id="O1"))

        with pytest.raises(ValidationException):
            await components.reconciler.replay_record("O1", 1)

    @pytest.mark.asyncio
    async def test_resolve_exhausted_record(self, components, order_factory):
        """Debe cerrar manualmente un registro EXHAUSTED con la nota del operador."""
        await components.coordinator.create_order(order_factory(customer_id="C404", order_id="O1"))

        record = await components.reconciler.resolve_record("O1", 1, "customer merged into C1")

        assert record.status == SyncStatus.DELIVERED
        assert record.note == "resolved by operator: customer merged into C1"
        assert (await components.record_store.get("O1", 1)).status == SyncStatus.DELIVERED

    @pytest.mark.asyncio
    async def test_resolve_delivered_record_is_rejected(self, components, order_factory):
        """Debe rechazar la resolución de un registro ya entregado."""
        await components.customer_store.create_customer(Customer(id="C1"))
        await components.coordinator.create_order(order_factory(order_id="O1"))

        with pytest.raises(ValidationException):
            await components.reconciler.resolve_record("O1", 1, "noop")
