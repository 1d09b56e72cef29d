"""
Endpoints de clientes (perfil). Las réplicas las mantiene el protocolo
de sincronización y no se modifican desde aquí.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Response, status

from app.api.v1.schemas.customer_schemas import CustomerCreateRequest, CustomerUpdateRequest, serialize_customer
from app.core.dependencies import get_customer_store
from app.db.customer_store import CustomerStore
from app.utils.error_handler import NotFoundException

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/customers", status_code=status.HTTP_201_CREATED)
async def create_customer(
    payload: CustomerCreateRequest,
    response: Response,
    store: CustomerStore = Depends(get_customer_store),
) -> Dict[str, Any]:
    customer = await store.create_customer(payload.to_domain())
    response.headers["Location"] = f"/api/v1/customers/{customer.id}"
    logger.info(f"👤 Customer {customer.id} created")
    return {"status": "success", "data": serialize_customer(customer)}


@router.get("/customers")
async def list_customers(store: CustomerStore = Depends(get_customer_store)) -> Dict[str, Any]:
    customers = await store.list_customers()
    return {
        "status": "success",
        "data": [serialize_customer(customer, include_replicas=False) for customer in customers],
        "count": len(customers),
    }


@router.get("/customers/{customer_id}")
async def get_customer(customer_id: str, store: CustomerStore = Depends(get_customer_store)) -> Dict[str, Any]:
    customer = await store.get_customer(customer_id)
    if customer is None:
        raise NotFoundException(
            message=f"Customer {customer_id} not found", resource="customer", resource_id=customer_id
        )
    return {"status": "success", "data": serialize_customer(customer)}


@router.put("/customers/{customer_id}")
async def update_customer(
    customer_id: str,
    payload: CustomerUpdateRequest,
    store: CustomerStore = Depends(get_customer_store),
) -> Dict[str, Any]:
    customer = await store.update_customer(payload.to_domain(customer_id))
    return {"status": "success", "data": serialize_customer(customer)}


@router.delete("/customers/{customer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_customer(customer_id: str, store: CustomerStore = Depends(get_customer_store)) -> Response:
    """
    Elimina el cliente y sus réplicas. Las órdenes que lo referencian
    quedan como divergencia no reparable para el reconciliador.
    """
    customer = await store.delete_customer(customer_id)
    if customer.replicas:
        logger.warning(f"Customer {customer_id} deleted with {len(customer.replicas)} replicas still attached")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
