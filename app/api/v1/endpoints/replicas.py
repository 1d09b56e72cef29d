"""
Endpoints de réplicas del lado cliente.

Los llama HttpSyncClient cuando el lado de órdenes corre en otro
proceso. Son idempotentes: un upsert repetido reemplaza la réplica y un
DELETE de una réplica inexistente responde 204.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Response, status

from app.api.v1.schemas.customer_schemas import ReplicaRequest
from app.core.dependencies import get_customer_store
from app.db.customer_store import CustomerStore
from app.utils.error_handler import ValidationException

logger = logging.getLogger(__name__)

router = APIRouter()


async def _upsert(
    customer_id: str, payload: ReplicaRequest, store: CustomerStore, idempotency_key: Optional[str]
) -> Dict[str, Any]:
    if payload.customer_id and payload.customer_id != customer_id:
        raise ValidationException(
            message=f"Replica customer_id {payload.customer_id} does not match customer {customer_id}",
            field="customer_id",
            invalid_value=payload.customer_id,
            expected_format=customer_id,
        )

    changed = await store.add_replica(customer_id, payload.to_domain(customer_id))
    logger.debug(f"Replica upsert {payload.id} v{payload.version} for {customer_id} (key={idempotency_key}) changed={changed}")
    return {"status": "success", "data": {"order_id": payload.id, "customer_id": customer_id, "changed": changed}}


@router.post("/customerOrders/{customer_id}")
async def add_customer_order(
    customer_id: str,
    payload: ReplicaRequest,
    store: CustomerStore = Depends(get_customer_store),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
) -> Dict[str, Any]:
    return await _upsert(customer_id, payload, store, idempotency_key)


@router.put("/customerOrders/{customer_id}")
async def update_customer_order(
    customer_id: str,
    payload: ReplicaRequest,
    store: CustomerStore = Depends(get_customer_store),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
) -> Dict[str, Any]:
    return await _upsert(customer_id, payload, store, idempotency_key)


@router.delete("/customerOrders/{customer_id}/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_customer_order(
    customer_id: str, order_id: str, store: CustomerStore = Depends(get_customer_store)
) -> Response:
    removed = await store.remove_replica(customer_id, order_id)
    if not removed:
        logger.debug(f"Replica {order_id} already absent on customer {customer_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
