"""Tests unitarios para los repositorios de órdenes, clientes y SyncRecords."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from app.db import CustomerStore, DocumentDatabase, OrderStore, SyncRecordStore
from app.domain.models import Customer, Order, OrderReplica, OrderStatus, ProductLine, SyncOperation, SyncStatus
from app.domain.value_objects import Money
from app.utils.error_handler import ConflictException, NotFoundException, ValidationException


def _order(**fields) -> Order:
    return Order(
        customer_id=fields.pop("customer_id", "C1"),
        payment_details=fields.pop("payment_details", "card"),
        products=fields.pop("products", [ProductLine(product_id="P1", quantity=1, unit_price=Decimal("10"))]),
        **fields,
    )


class TestDocumentDatabase:
    """Tests para las transacciones locales del almacén de documentos."""

    @pytest.mark.asyncio
    async def test_transaction_rolls_back_every_write(self):
        """Debe deshacer todas las escrituras si el bloque falla."""
        database = DocumentDatabase("orders")
        orders = database.collection("orders")
        orders.put("O0", {"id": "O0"})

        with pytest.raises(RuntimeError):
            async with database.transaction():
                orders.put("O1", {"id": "O1"})
                orders.put("O0", {"id": "O0", "changed": True})
                database.collection("sync_records").put("O1:1", {"status": "PENDING"})
                raise RuntimeError("boom")

        assert orders.keys() == ["O0"]
        assert orders.get("O0") == {"id": "O0"}
        assert len(database.collection("sync_records")) == 0

    @pytest.mark.asyncio
    async def test_documents_are_copied(self):
        """Debe entregar copias que no alteran lo almacenado."""
        collection = DocumentDatabase("orders").collection("orders")
        collection.put("O1", {"tags": ["a"]})

        collection.get("O1")["tags"].append("b")

        assert collection.get("O1") == {"tags": ["a"]}

    def test_page_is_key_ordered(self):
        """Debe paginar por clave de forma estrictamente posterior al cursor."""
        collection = DocumentDatabase("orders").collection("orders")
        for key in ["c", "a", "b", "d"]:
            collection.put(key, {"id": key})

        assert [key for key, _ in collection.page(after="b", limit=10)] == ["c", "d"]
        assert [key for key, _ in collection.page(limit=2)] == ["a", "b"]


class TestOrderStore:
    """Tests para OrderStore y su control de concurrencia optimista."""

    @pytest.mark.asyncio
    async def test_create_assigns_id_and_version_zero(self):
        """Debe asignar id, versión 0 y timestamps al crear."""
        store = OrderStore(DocumentDatabase("orders"))

        order = await store.create(_order())

        assert order.id
        assert order.version == 0
        assert order.created_at == order.updated_at
        assert (await store.get(order.id)).customer_id == "C1"

    @pytest.mark.asyncio
    async def test_create_collects_every_validation_error(self):
        """Debe reportar todos los errores de validación en una sola excepción."""
        store = OrderStore(DocumentDatabase("orders"))

        with pytest.raises(ValidationException) as exc_info:
            await store.create(_order(customer_id="", payment_details="", products=[]))

        fields = [error["field"] for error in exc_info.value.errors]
        assert fields == ["customer_id", "payment_details", "products"]
        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_duplicate_product_ids_are_rejected(self):
        """Debe rechazar productos repetidos en la misma orden."""
        store = OrderStore(DocumentDatabase("orders"))
        products = [
            ProductLine(product_id="P1", quantity=1, unit_price=Decimal("1")),
            ProductLine(product_id="P1", quantity=2, unit_price=Decimal("1")),
        ]

        with pytest.raises(ValidationException) as exc_info:
            await store.create(_order(products=products))

        assert exc_info.value.field == "products[1].product_id"

    @pytest.mark.asyncio
    async def test_mixed_currencies_are_rejected(self):
        """Debe rechazar productos en monedas distintas sin escribir la orden."""
        store = OrderStore(DocumentDatabase("orders"))
        products = [
            ProductLine(product_id="P1", quantity=1, unit_price=Money(amount=Decimal("10"), currency="USD")),
            ProductLine(product_id="P2", quantity=1, unit_price=Money(amount=Decimal("10"), currency="EUR")),
        ]

        with pytest.raises(ValidationException) as exc_info:
            await store.create(_order(id="O9", products=products))

        assert [error["field"] for error in exc_info.value.errors] == ["products[1].currency"]
        assert await store.get("O9") is None

    @pytest.mark.asyncio
    async def test_update_increments_version_by_one(self):
        """Debe incrementar la versión en exactamente uno y preservar created_at."""
        store = OrderStore(DocumentDatabase("orders"))
        created = await store.create(_order())

        updated = await store.update(created.copy(status=OrderStatus.CONFIRMED))

        assert updated.version == 1
        assert updated.created_at == created.created_at
        assert (await store.get(created.id)).status == OrderStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_stale_version_raises_conflict_without_changes(self):
        """Debe rechazar una versión obsoleta sin modificar la orden."""
        store = OrderStore(DocumentDatabase("orders"))
        created = await store.create(_order())
        await store.update(created.copy(status=OrderStatus.CONFIRMED))

        with pytest.raises(ConflictException) as exc_info:
            await store.update(created.copy(status=OrderStatus.CANCELLED))

        assert exc_info.value.expected_version == 0
        assert exc_info.value.actual_version == 1
        assert (await store.get(created.id)).status == OrderStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_customer_id_is_immutable(self):
        """Debe rechazar el cambio de cliente en una actualización."""
        store = OrderStore(DocumentDatabase("orders"))
        created = await store.create(_order())

        with pytest.raises(ValidationException):
            await store.update(created.copy(customer_id="C2"))

    @pytest.mark.asyncio
    async def test_update_and_delete_missing_order(self):
        """Debe lanzar NotFoundException para órdenes inexistentes."""
        store = OrderStore(DocumentDatabase("orders"))

        with pytest.raises(NotFoundException):
            await store.update(_order(id="O404", version=0))
        with pytest.raises(NotFoundException):
            await store.delete("O404")

    @pytest.mark.asyncio
    async def test_duplicate_id_raises_conflict(self):
        """Debe rechazar la creación con un id existente."""
        store = OrderStore(DocumentDatabase("orders"))
        await store.create(_order(id="O1"))

        with pytest.raises(ConflictException):
            await store.create(_order(id="O1"))


class TestCustomerStore:
    """Tests para CustomerStore y la idempotencia de las réplicas."""

    @pytest.mark.asyncio
    async def test_add_replica_twice_keeps_one(self):
        """Debe mantener una única réplica al repetir el upsert."""
        store = CustomerStore(DocumentDatabase("customers"))
        await store.create_customer(Customer(id="C1", name="Ana"))
        replica = OrderReplica(id="O1", customer_id="C1", version=0)

        await store.add_replica("C1", replica)
        await store.add_replica("C1", replica)

        assert [r.id for r in await store.list_replicas("C1")] == ["O1"]

    @pytest.mark.asyncio
    async def test_add_replica_to_missing_customer(self):
        """Debe lanzar NotFoundException si el cliente no existe."""
        store = CustomerStore(DocumentDatabase("customers"))

        with pytest.raises(NotFoundException):
            await store.add_replica("C404", OrderReplica(id="O1", customer_id="C404"))

    @pytest.mark.asyncio
    async def test_remove_replica_is_idempotent(self):
        """Debe tratar como éxito la eliminación de réplicas o clientes ausentes."""
        store = CustomerStore(DocumentDatabase("customers"))
        await store.create_customer(Customer(id="C1"))
        await store.add_replica("C1", OrderReplica(id="O1", customer_id="C1"))

        assert await store.remove_replica("C1", "O1") is True
        assert await store.remove_replica("C1", "O1") is False
        assert await store.remove_replica("C404", "O1") is False

    @pytest.mark.asyncio
    async def test_replace_replica_set(self):
        """Debe forzar exactamente el conjunto de réplicas indicado."""
        store = CustomerStore(DocumentDatabase("customers"))
        await store.create_customer(Customer(id="C1"))
        await store.add_replica("C1", OrderReplica(id="O1", customer_id="C1"))

        customer = await store.replace_replica_set(
            "C1", [OrderReplica(id="O2", customer_id="C1"), OrderReplica(id="O3", customer_id="C1")]
        )

        assert customer.order_ids == ["O2", "O3"]

    @pytest.mark.asyncio
    async def test_update_customer_keeps_replicas(self):
        """Debe actualizar el perfil sin tocar las réplicas."""
        store = CustomerStore(DocumentDatabase("customers"))
        await store.create_customer(Customer(id="C1", name="Ana"))
        await store.add_replica("C1", OrderReplica(id="O1", customer_id="C1"))

        updated = await store.update_customer(Customer(id="C1", name="Ana María", email="ana@example.com"))

        assert updated.name == "Ana María"
        assert updated.order_ids == ["O1"]

    @pytest.mark.asyncio
    async def test_duplicate_customer_raises_conflict(self):
        """Debe rechazar un cliente con id existente."""
        store = CustomerStore(DocumentDatabase("customers"))
        await store.create_customer(Customer(id="C1"))

        with pytest.raises(ConflictException):
            await store.create_customer(Customer(id="C1"))


class TestSyncRecordStore:
    """Tests para SyncRecordStore: épocas, filtros y purga."""

    @pytest.mark.asyncio
    async def test_epochs_increase_per_order(self):
        """Debe asignar épocas consecutivas por orden."""
        store = SyncRecordStore(DocumentDatabase("orders"))

        first = await store.open("O1", SyncOperation.CREATE, "C1")
        second = await store.open("O1", SyncOperation.UPDATE, "C1")
        other = await store.open("O2", SyncOperation.CREATE, "C1")

        assert (first.epoch, second.epoch, other.epoch) == (1, 2, 1)
        assert (await store.latest_for_order("O1")).operation == SyncOperation.UPDATE

    @pytest.mark.asyncio
    async def test_order_ids_sharing_a_key_prefix_stay_separate(self):
        """No debe mezclar los registros de "a" con los de "a:x"."""
        store = SyncRecordStore(DocumentDatabase("orders"))
        await store.open("a", SyncOperation.CREATE, "C1")
        for _ in range(3):
            record = await store.open("a:x", SyncOperation.UPDATE, "C1")
            record.mark_delivered()
            await store.save(record)

        assert [(record.order_id, record.epoch) for record in await store.list_for_order("a")] == [("a", 1)]
        assert await store.latest_delivered_epoch("a") == 0
        assert (await store.open("a", SyncOperation.UPDATE, "C1")).epoch == 2
        assert await store.latest_delivered_epoch("a:x") == 3

    @pytest.mark.asyncio
    async def test_list_by_status(self):
        """Debe filtrar por estado."""
        store = SyncRecordStore(DocumentDatabase("orders"))
        delivered = await store.open("O1", SyncOperation.CREATE, "C1")
        delivered.mark_delivered()
        await store.save(delivered)
        await store.open("O2", SyncOperation.CREATE, "C1")

        pending = await store.list_by_status([SyncStatus.PENDING])

        assert [record.order_id for record in pending] == ["O2"]
        assert (await store.count_by_status())["DELIVERED"] == 1

    @pytest.mark.asyncio
    async def test_purge_keeps_latest_record_per_order(self):
        """Debe purgar entregados antiguos conservando el último de cada orden."""
        store = SyncRecordStore(DocumentDatabase("orders"))
        for operation in (SyncOperation.CREATE, SyncOperation.UPDATE):
            record = await store.open("O1", operation, "C1")
            record.mark_delivered()
            await store.save(record)

        purged = await store.purge_delivered(datetime.now(UTC) + timedelta(seconds=1))

        assert purged == 1
        assert [record.epoch for record in await store.list_for_order("O1")] == [2]
        assert (await store.open("O1", SyncOperation.DELETE, "C1")).epoch == 3

    @pytest.mark.asyncio
    async def test_purge_respects_retention(self):
        """Debe conservar entregados más recientes que la ventana de retención."""
        store = SyncRecordStore(DocumentDatabase("orders"))
        for operation in (SyncOperation.CREATE, SyncOperation.UPDATE):
            record = await store.open("O1", operation, "C1")
            record.mark_delivered()
            await store.save(record)

        assert await store.purge_delivered(datetime.now(UTC) - timedelta(days=1)) == 0

    @pytest.mark.asyncio
    async def test_require_missing_record(self):
        """Debe lanzar NotFoundException para un registro inexistente."""
        store = SyncRecordStore(DocumentDatabase("orders"))

        with pytest.raises(NotFoundException):
            await store.require("O1", 1)
