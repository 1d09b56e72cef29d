"""
Modelos Pydantic para clientes y réplicas de órdenes.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from app.domain.models import Customer, OrderReplica, OrderStatus


class CustomerCreateRequest(BaseModel):
    """Petición de creación de cliente."""

    id: Optional[str] = Field(None, description="Identificador opcional; se genera si se omite")
    name: str = Field(..., min_length=1, max_length=200, description="Nombre del cliente")
    email: str = Field(default="", max_length=200, description="Correo de contacto")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        """Valida formato básico de email."""
        if v and "@" not in v:
            raise ValueError("Email inválido")
        return v.lower()

    def to_domain(self) -> Customer:
        return Customer(id=self.id, name=self.name, email=self.email)


class CustomerUpdateRequest(BaseModel):
    """Petición de actualización del perfil (no toca las réplicas)."""

    name: str = Field(..., min_length=1, max_length=200, description="Nombre del cliente")
    email: str = Field(default="", max_length=200, description="Correo de contacto")

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        if v and "@" not in v:
            raise ValueError("Email inválido")
        return v.lower()

    def to_domain(self, customer_id: str) -> Customer:
        return Customer(id=customer_id, name=self.name, email=self.email)


class ReplicaRequest(BaseModel):
    """Réplica enviada por el lado de órdenes (HttpSyncClient)."""

    id: str = Field(..., min_length=1, description="Identificador de la orden")
    customer_id: Optional[str] = Field(None, description="Cliente dueño de la orden")
    version: int = Field(default=0, ge=0, description="Versión de la orden")
    status: OrderStatus = Field(default=OrderStatus.CREATED, description="Estado de la orden")

    def to_domain(self, customer_id: str) -> OrderReplica:
        return OrderReplica(id=self.id, customer_id=customer_id, version=self.version, status=self.status)


def serialize_customer(customer: Customer, include_replicas: bool = True) -> Dict[str, Any]:
    data = customer.to_dict()
    if not include_replicas:
        data.pop("replicas", None)
    data["order_ids"] = customer.order_ids
    return data
