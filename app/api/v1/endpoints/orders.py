"""
Endpoints de órdenes (lado autoritativo).

Las escrituras pasan por el SyncCoordinator: la respuesta refleja la
escritura local y el estado de propagación hacia el cliente. Una
propagación pendiente o agotada no es un error: se informa con el bloque
``sync`` y los headers ``X-Sync-Status`` / ``X-Sync-Degraded``.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status

from app.api.v1.schemas.order_schemas import OrderCreateRequest, OrderUpdateRequest, serialize_order
from app.core.dependencies import get_order_service
from app.services.orders.order_service import OrderService
from app.services.sync.coordinator import MutationResult

logger = logging.getLogger(__name__)

router = APIRouter()


def apply_sync_headers(response: Response, result: MutationResult) -> None:
    """Agrega los headers de estado de propagación a la respuesta."""
    response.headers["X-Sync-Status"] = result.sync_status.value
    response.headers["X-Sync-Degraded"] = "true" if result.degraded else "false"
    if result.degraded:
        logger.warning(
            f"⚠️ Order {result.order.id} written locally, propagation {result.sync_status.value} "
            f"(epoch {result.sync_record.epoch})"
        )


def mutation_body(result: MutationResult) -> Dict[str, Any]:
    return {
        "status": "success",
        "data": serialize_order(result.order),
        "sync": result.sync_info(),
    }


@router.post("/orders", status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreateRequest,
    request: Request,
    response: Response,
    service: OrderService = Depends(get_order_service),
) -> Dict[str, Any]:
    """
    Crea una orden y propaga su réplica al cliente.

    Returns:
        Dict: Orden creada y estado de sincronización
    """
    result = await service.create_order(payload.to_domain())
    response.headers["Location"] = str(request.url_for("get_order", order_id=result.order.id).path)
    apply_sync_headers(response, result)
    return mutation_body(result)


@router.get("/orders")
async def list_orders(
    customer_id: Optional[str] = Query(None, description="Filtrar por cliente"),
    service: OrderService = Depends(get_order_service),
) -> Dict[str, Any]:
    orders = await service.list_orders(customer_id=customer_id)
    return {"status": "success", "data": [serialize_order(order) for order in orders], "count": len(orders)}


@router.get("/orders/{order_id}", name="get_order")
async def get_order(order_id: str, service: OrderService = Depends(get_order_service)) -> Dict[str, Any]:
    order = await service.get_order(order_id)
    return {"status": "success", "data": serialize_order(order)}


@router.put("/orders/{order_id}")
async def update_order(
    order_id: str,
    payload: OrderUpdateRequest,
    response: Response,
    service: OrderService = Depends(get_order_service),
) -> Dict[str, Any]:
    """
    Actualiza una orden. ``version`` debe coincidir con la versión almacenada
    (409 en caso contrario, sin cambios en ningún lado).
    """
    result = await service.update_order(payload.to_domain(order_id))
    apply_sync_headers(response, result)
    return mutation_body(result)


@router.delete("/orders/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_order(order_id: str, service: OrderService = Depends(get_order_service)) -> Response:
    result = await service.delete_order(order_id)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    apply_sync_headers(response, result)
    return response
