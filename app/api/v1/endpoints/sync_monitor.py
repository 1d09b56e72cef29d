"""
Endpoints para monitoreo y control de la sincronización de réplicas.

Permiten a un operador consultar SyncRecords y alertas, disparar la
reconciliación, reintentar o cerrar manualmente un registro y reconstruir
las réplicas de un cliente.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, status

from app.api.v1.schemas.customer_schemas import serialize_customer
from app.api.v1.schemas.sync_schemas import ResolveRecordRequest
from app.core.dependencies import get_alert_history, get_components, get_reconciler, get_record_store
from app.core.metrics import get_metrics_summary
from app.core.scheduler import get_scheduler_status, manual_reconcile_trigger
from app.db.sync_record_store import SyncRecordStore
from app.domain.models import SyncStatus
from app.services.sync.factory import SyncComponents
from app.services.sync.reconciler import Reconciler
from app.utils.notifications import AlertRecorder

logger = logging.getLogger(__name__)

# Crear router
router = APIRouter()


@router.get("/status", status_code=status.HTTP_200_OK)
async def get_sync_status(components: SyncComponents = Depends(get_components)) -> Dict[str, Any]:
    """
    Obtiene el estado actual de la sincronización.

    Returns:
        Dict: Conteo de registros por estado, reintentos en curso y scheduler
    """
    counts = await components.record_store.count_by_status()
    return {
        "status": "success",
        "data": {
            "records_by_status": counts,
            "pending_retries": components.coordinator.pending_retries,
            "scheduler": get_scheduler_status(),
            "last_reconcile": components.reconciler.last_report,
            "alerts": len(components.alert_recorder),
        },
    }


@router.get("/records", status_code=status.HTTP_200_OK)
async def list_sync_records(
    status_filter: Optional[SyncStatus] = Query(None, alias="status", description="Filtrar por estado"),
    order_id: Optional[str] = Query(None, description="Filtrar por orden"),
    limit: int = Query(100, ge=1, le=1000),
    store: SyncRecordStore = Depends(get_record_store),
) -> Dict[str, Any]:
    """
    Lista SyncRecords; los registros EXHAUSTED quedan aquí hasta que se
    reintentan, se resuelven o son superados por una época posterior.
    """
    if order_id:
        records = await store.list_for_order(order_id)
        if status_filter is not None:
            records = [record for record in records if record.status == status_filter]
        records = records[:limit]
    else:
        statuses = [status_filter] if status_filter is not None else list(SyncStatus)
        records = await store.list_by_status(statuses, limit=limit)

    return {"status": "success", "data": [record.to_dict() for record in records], "count": len(records)}


@router.get("/alerts", status_code=status.HTTP_200_OK)
async def list_alerts(
    alert_type: Optional[str] = Query(None, description="Filtrar por tipo de alerta"),
    limit: int = Query(50, ge=1, le=1000),
    recorder: AlertRecorder = Depends(get_alert_history),
) -> Dict[str, Any]:
    alerts = recorder.list(alert_type=alert_type, limit=limit)
    return {"status": "success", "data": alerts, "count": len(alerts)}


@router.post("/reconcile", status_code=status.HTTP_200_OK)
async def trigger_reconcile(reconciler: Reconciler = Depends(get_reconciler)) -> Dict[str, Any]:
    """
    Ejecuta una pasada de reconciliación inmediata.

    Returns:
        Dict: Reporte de la pasada (``skipped`` si ya había una en curso)
    """
    logger.info("API: Iniciando reconciliación manual")
    report = await manual_reconcile_trigger(reconciler)
    return {"status": "success", "data": report}


@router.post("/records/{order_id}/{epoch}/replay", status_code=status.HTTP_200_OK)
async def replay_sync_record(
    order_id: str, epoch: int, reconciler: Reconciler = Depends(get_reconciler)
) -> Dict[str, Any]:
    record = await reconciler.replay_record(order_id, epoch)
    logger.info(f"API: Sync record {record.key} replayed -> {record.status.value}")
    return {"status": "success", "data": record.to_dict()}


@router.post("/records/{order_id}/{epoch}/resolve", status_code=status.HTTP_200_OK)
async def resolve_sync_record(
    order_id: str,
    epoch: int,
    payload: ResolveRecordRequest,
    reconciler: Reconciler = Depends(get_reconciler),
) -> Dict[str, Any]:
    record = await reconciler.resolve_record(order_id, epoch, payload.note)
    return {"status": "success", "data": record.to_dict()}


@router.post("/customers/{customer_id}/rebuild", status_code=status.HTTP_200_OK)
async def rebuild_customer_replicas(
    customer_id: str, reconciler: Reconciler = Depends(get_reconciler)
) -> Dict[str, Any]:
    customer = await reconciler.rebuild_customer(customer_id)
    return {"status": "success", "data": serialize_customer(customer)}


@router.get("/metrics", status_code=status.HTTP_200_OK)
async def get_sync_metrics() -> Dict[str, Any]:
    return {"status": "success", "data": get_metrics_summary()}
