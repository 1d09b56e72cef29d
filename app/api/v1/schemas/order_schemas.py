"""
Modelos Pydantic para las peticiones y respuestas de órdenes.

Los modelos solo validan tipos; las reglas de negocio (campos requeridos,
productos únicos, cantidades) las aplica OrderValidator para reportar
todos los errores de una vez.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.domain.models import Order, OrderStatus, ProductLine
from app.domain.models.customer import OrderReplica
from app.domain.value_objects import Address, Money


class AddressSchema(BaseModel):
    """Dirección de envío."""

    street: str = Field(..., max_length=200, description="Calle y número")
    city: str = Field(..., max_length=100, description="Ciudad")
    state: Optional[str] = Field(None, max_length=100, description="Estado o provincia")
    zip_code: Optional[str] = Field(None, max_length=20, description="Código postal")
    country: str = Field(default="US", max_length=2, description="Código de país ISO")

    def to_domain(self) -> Address:
        return Address(
            street=self.street,
            city=self.city,
            state=self.state or "",
            zip_code=self.zip_code or "",
            country=self.country,
        )


class ProductLineSchema(BaseModel):
    """Producto dentro de una orden."""

    product_id: str = Field(..., description="Identificador del producto")
    quantity: int = Field(default=1, description="Unidades ordenadas")
    unit_price: Decimal = Field(default=Decimal("0"), ge=0, description="Precio unitario")
    currency: str = Field(default="USD", min_length=3, max_length=3, description="Moneda")
    name: str = Field(default="", max_length=200, description="Nombre del producto")

    def to_domain(self) -> ProductLine:
        return ProductLine(
            product_id=self.product_id,
            quantity=self.quantity,
            unit_price=Money(amount=self.unit_price, currency=self.currency),
            name=self.name,
        )


class OrderBaseRequest(BaseModel):
    payment_details: Optional[str] = Field(None, description="Referencia de pago")
    products: List[ProductLineSchema] = Field(default_factory=list, description="Productos de la orden")
    shipping_address: Optional[AddressSchema] = Field(None, description="Dirección de envío")
    status: OrderStatus = Field(default=OrderStatus.CREATED, description="Estado de la orden")
    payment_confirmed: bool = Field(default=False, description="Pago confirmado")

    def _fields(self) -> Dict[str, Any]:
        return {
            "payment_details": self.payment_details or "",
            "products": [line.to_domain() for line in self.products],
            "shipping_address": self.shipping_address.to_domain() if self.shipping_address else None,
            "status": self.status,
            "payment_confirmed": self.payment_confirmed,
        }


class OrderCreateRequest(OrderBaseRequest):
    """Petición de creación de orden."""

    id: Optional[str] = Field(None, description="Identificador opcional; se genera si se omite")
    customer_id: Optional[str] = Field(None, description="Cliente dueño de la orden")

    def to_domain(self, customer_id: Optional[str] = None) -> Order:
        return Order(id=self.id, customer_id=customer_id or self.customer_id or "", **self._fields())


class OrderUpdateRequest(OrderBaseRequest):
    """Petición de actualización; ``version`` debe coincidir con la versión almacenada."""

    customer_id: Optional[str] = Field(None, description="Cliente dueño de la orden (no puede cambiar)")
    version: int = Field(..., ge=0, description="Versión leída por el cliente")

    def to_domain(self, order_id: str, customer_id: Optional[str] = None) -> Order:
        return Order(
            id=order_id,
            customer_id=customer_id or self.customer_id or "",
            version=self.version,
            **self._fields(),
        )


def serialize_order(order: Order) -> Dict[str, Any]:
    """Documento de respuesta para una orden (incluye el total calculado)."""
    data = order.to_dict()
    total = order.total
    data["total"] = {"amount": str(total.amount), "currency": total.currency}
    return data


def serialize_replica(replica: OrderReplica) -> Dict[str, Any]:
    return replica.to_dict()
