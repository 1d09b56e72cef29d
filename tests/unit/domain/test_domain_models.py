"""Tests unitarios para los modelos de dominio: Money, Order, Customer y SyncRecord."""

from decimal import Decimal

import pytest

from app.domain.models import Customer, Order, OrderReplica, OrderStatus, ProductLine, SyncRecord, SyncStatus
from app.domain.value_objects import Address, Money


class TestMoney:
    """Tests para el value object Money."""

    def test_amount_is_rounded_to_two_decimals(self):
        """Debe normalizar el monto a dos decimales."""
        assert Money(amount=Decimal("10.005")).amount == Decimal("10.01")

    def test_string_amount_is_converted(self):
        """Debe aceptar montos como string."""
        assert Money(amount="7.5").amount == Decimal("7.50")

    def test_negative_amount_is_rejected(self):
        """Debe rechazar montos negativos."""
        with pytest.raises(ValueError):
            Money(amount=Decimal("-1"))

    def test_different_currencies_cannot_be_added(self):
        """Debe rechazar la suma de monedas distintas."""
        with pytest.raises(ValueError):
            Money(amount=Decimal("1"), currency="USD") + Money(amount=Decimal("1"), currency="EUR")

    def test_multiplication(self):
        """Debe multiplicar por un escalar entero."""
        assert (Money(amount=Decimal("19.99")) * 3).amount == Decimal("59.97")


class TestOrder:
    """Tests para el agregado Order."""

    def _order(self) -> Order:
        return Order(
            id="O1",
            customer_id="C1",
            payment_details="card",
            version=2,
            products=[
                ProductLine(product_id="P1", quantity=2, unit_price=Decimal("10")),
                ProductLine(product_id="P2", quantity=1, unit_price=Decimal("5.50")),
            ],
            shipping_address=Address(street="Av. Central 1", city="San José", country="CR"),
        )

    def test_total_sums_every_line(self):
        """Debe calcular el total como la suma de los subtotales."""
        assert self._order().total.amount == Decimal("25.50")

    def test_dict_round_trip_preserves_fields(self):
        """Debe reconstruir la orden desde su documento."""
        order = self._order()
        restored = Order.from_dict(order.to_dict())

        assert restored.id == "O1"
        assert restored.version == 2
        assert restored.product_ids == ["P1", "P2"]
        assert restored.shipping_address.city == "San José"

    def test_copy_does_not_share_product_lines(self):
        """Debe copiar las líneas para que la copia no altere el original."""
        order = self._order()
        clone = order.copy(version=3)
        clone.products[0].quantity = 99

        assert order.products[0].quantity == 2
        assert clone.version == 3

    def test_status_is_coerced_from_string(self):
        """Debe convertir el estado recibido como string."""
        order = Order(customer_id="C1", payment_details="card", status="SHIPPED")
        assert order.status == OrderStatus.SHIPPED


class TestCustomerReplicas:
    """Tests para el conjunto de réplicas de un cliente."""

    def test_upsert_replaces_instead_of_duplicating(self):
        """Debe reemplazar la réplica existente con el mismo id."""
        customer = Customer(id="C1")
        customer.upsert_replica(OrderReplica(id="O1", customer_id="C1", version=0))
        customer.upsert_replica(OrderReplica(id="O1", customer_id="C1", version=1, status=OrderStatus.CONFIRMED))

        assert customer.order_ids == ["O1"]
        assert customer.replicas["O1"].version == 1
        assert customer.replicas["O1"].status == OrderStatus.CONFIRMED

    def test_older_replica_is_ignored(self):
        """Debe ignorar una réplica con versión anterior a la almacenada."""
        customer = Customer(id="C1")
        customer.upsert_replica(OrderReplica(id="O1", customer_id="C1", version=3))

        changed = customer.upsert_replica(OrderReplica(id="O1", customer_id="C1", version=2))

        assert changed is False
        assert customer.replicas["O1"].version == 3

    def test_remove_missing_replica_is_noop(self):
        """Debe retornar False al eliminar una réplica inexistente."""
        assert Customer(id="C1").remove_replica("O404") is False

    def test_replica_equality_is_by_id(self):
        """Debe comparar réplicas solo por id."""
        assert OrderReplica(id="O1", customer_id="C1", version=0) == OrderReplica(id="O1", customer_id="C1", version=5)

    def test_replica_matches_order(self):
        """Debe detectar si la réplica refleja la versión y estado de la orden."""
        order = Order(id="O1", customer_id="C1", payment_details="card", version=1, status=OrderStatus.CONFIRMED)
        replica = OrderReplica.from_order(order)

        assert replica.matches(order)
        order.version = 2
        assert not replica.matches(order)

    def test_replica_requires_order_id(self):
        """Debe rechazar construir una réplica de una orden sin id."""
        with pytest.raises(ValueError):
            OrderReplica.from_order(Order(customer_id="C1", payment_details="card"))


class TestSyncRecordStateMachine:
    """Tests para las transiciones de SyncRecord."""

    def _record(self) -> SyncRecord:
        return SyncRecord(order_id="O1", epoch=1, operation="CREATE", customer_id="C1")

    def test_pending_to_delivered(self):
        """Debe pasar de PENDING a DELIVERED y limpiar el error."""
        record = self._record()
        record.mark_delivered()

        assert record.status == SyncStatus.DELIVERED
        assert record.delivered_at is not None
        assert record.is_terminal

    def test_failed_retry_cycle(self):
        """Debe permitir FAILED -> PENDING -> EXHAUSTED."""
        record = self._record()
        record.mark_failed("HTTP 503")
        record.mark_pending()
        record.mark_exhausted("HTTP 503")

        assert record.status == SyncStatus.EXHAUSTED
        assert record.last_error == "HTTP 503"

    def test_delivered_is_final(self):
        """Debe rechazar cualquier transición desde DELIVERED."""
        record = self._record()
        record.mark_delivered()

        with pytest.raises(ValueError):
            record.mark_pending()

    def test_exhausted_can_be_superseded(self):
        """Debe permitir cerrar un registro EXHAUSTED con una nota."""
        record = self._record()
        record.mark_exhausted("customer missing")
        record.mark_delivered(note="superseded by epoch 2")

        assert record.status == SyncStatus.DELIVERED
        assert record.note == "superseded by epoch 2"
        assert record.last_error == "customer missing"

    def test_epoch_must_be_positive(self):
        """Debe rechazar épocas menores a 1."""
        with pytest.raises(ValueError):
            SyncRecord(order_id="O1", epoch=0, operation="CREATE", customer_id="C1")

    def test_dict_round_trip(self):
        """Debe reconstruir el registro desde su documento."""
        record = self._record()
        record.record_attempt()
        record.mark_failed("timeout")

        restored = SyncRecord.from_dict(record.to_dict())

        assert restored.key == "O1:1"
        assert restored.status == SyncStatus.FAILED
        assert restored.attempts == 1
        assert restored.last_attempt_at == record.last_attempt_at
