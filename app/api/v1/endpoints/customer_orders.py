"""
Endpoints de órdenes con alcance de cliente.

Las lecturas se sirven desde las réplicas del cliente; las escrituras
verifican que la orden pertenezca al cliente y pasan por el coordinador.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, Response, status

from app.api.v1.endpoints.orders import apply_sync_headers, mutation_body
from app.api.v1.schemas.order_schemas import OrderCreateRequest, OrderUpdateRequest, serialize_replica
from app.core.dependencies import get_order_service
from app.services.orders.order_service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/customers/{customer_id}/orders", status_code=status.HTTP_201_CREATED)
async def create_order_for_customer(
    customer_id: str,
    payload: OrderCreateRequest,
    request: Request,
    response: Response,
    service: OrderService = Depends(get_order_service),
) -> Dict[str, Any]:
    result = await service.create_order_for_customer(customer_id, payload.to_domain())
    response.headers["Location"] = str(
        request.url_for("get_order_for_customer", customer_id=customer_id, order_id=result.order.id).path
    )
    apply_sync_headers(response, result)
    return mutation_body(result)


@router.get("/customers/{customer_id}/orders")
async def list_orders_for_customer(
    customer_id: str, service: OrderService = Depends(get_order_service)
) -> Dict[str, Any]:
    """
    Lista las órdenes del cliente tal como las ve el lado cliente (réplicas).
    """
    replicas = await service.list_orders_for_customer(customer_id)
    return {
        "status": "success",
        "data": [serialize_replica(replica) for replica in replicas],
        "count": len(replicas),
    }


@router.get("/customers/{customer_id}/orders/{order_id}", name="get_order_for_customer")
async def get_order_for_customer(
    customer_id: str, order_id: str, service: OrderService = Depends(get_order_service)
) -> Dict[str, Any]:
    replica = await service.get_order_for_customer(customer_id, order_id)
    return {"status": "success", "data": serialize_replica(replica)}


@router.put("/customers/{customer_id}/orders/{order_id}")
async def update_order_for_customer(
    customer_id: str,
    order_id: str,
    payload: OrderUpdateRequest,
    response: Response,
    service: OrderService = Depends(get_order_service),
) -> Dict[str, Any]:
    result = await service.update_order_for_customer(customer_id, payload.to_domain(order_id, customer_id))
    apply_sync_headers(response, result)
    return mutation_body(result)


@router.delete("/customers/{customer_id}/orders/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order_for_customer(
    customer_id: str, order_id: str, service: OrderService = Depends(get_order_service)
) -> Response:
    result = await service.delete_order_for_customer(customer_id, order_id)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    apply_sync_headers(response, result)
    return response
