"""
Motor de scheduling para la reconciliación periódica.

Ejecuta ``Reconciler.run_once()`` cada RECONCILE_INTERVAL_SECONDS y
permite disparos manuales desde la API de sincronización.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from app.core.config import get_settings
from app.services.sync.reconciler import Reconciler

logger = logging.getLogger(__name__)

# Global scheduler state
_scheduler_running = False
_scheduler_task: Optional[asyncio.Task] = None
_reconciler: Optional[Reconciler] = None
_interval_seconds: Optional[float] = None
_last_run_at: Optional[datetime] = None
_last_run_error: Optional[str] = None
_runs = 0


async def start_scheduler(reconciler: Reconciler, interval_seconds: Optional[float] = None):
    """
    Inicia la reconciliación periódica.

    Args:
        reconciler: Reconciliador a ejecutar
        interval_seconds: Intervalo entre pasadas (RECONCILE_INTERVAL_SECONDS por defecto)
    """
    global _scheduler_running, _scheduler_task, _reconciler, _interval_seconds

    if _scheduler_running:
        logger.warning("Scheduler ya está ejecutándose")
        return

    _reconciler = reconciler
    _interval_seconds = interval_seconds or get_settings().RECONCILE_INTERVAL_SECONDS
    _scheduler_running = True
    _scheduler_task = asyncio.create_task(_scheduler_loop(), name="reconcile-scheduler")

    logger.info(f"🕒 Scheduler de reconciliación iniciado (cada {_interval_seconds}s)")


async def stop_scheduler():
    """
    Detiene el scheduler y espera a que la tarea termine.
    """
    global _scheduler_running, _scheduler_task

    if not _scheduler_running:
        logger.info("Scheduler no está ejecutándose")
        return

    logger.info("🛑 Deteniendo scheduler")
    _scheduler_running = False

    if _scheduler_task and not _scheduler_task.done():
        _scheduler_task.cancel()
        try:
            await _scheduler_task
        except asyncio.CancelledError:
            pass

    _scheduler_task = None
    logger.info("✅ Scheduler detenido correctamente")


async def _run_reconcile() -> Dict[str, Any]:
    global _last_run_at, _last_run_error, _runs

    report = await _reconciler.run_once()
    _last_run_at = datetime.now(timezone.utc)
    _last_run_error = None
    _runs += 1
    return report


async def _scheduler_loop():
    """
    Loop principal: una pasada de reconciliación por intervalo.
    """
    global _last_run_error

    while _scheduler_running:
        await asyncio.sleep(_interval_seconds)
        try:
            await _run_reconcile()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            _last_run_error = str(e)
            logger.exception(f"Error en pasada de reconciliación programada: {e}")


def get_scheduler_status() -> Dict[str, Any]:
    """
    Obtiene el estado actual del scheduler.

    Returns:
        Dict: Información del estado
    """
    return {
        "running": _scheduler_running,
        "task_active": _scheduler_task is not None and not _scheduler_task.done(),
        "interval_seconds": _interval_seconds,
        "runs": _runs,
        "last_run_at": _last_run_at.isoformat() if _last_run_at else None,
        "last_run_error": _last_run_error,
        "next_run_estimate": _get_next_run_time(),
        "reconcile_in_progress": _reconciler.is_running if _reconciler else False,
    }


async def manual_reconcile_trigger(reconciler: Optional[Reconciler] = None) -> Dict[str, Any]:
    """
    Ejecuta una pasada de reconciliación inmediata.

    Args:
        reconciler: Reconciliador a usar, el del scheduler por defecto

    Returns:
        Dict: Reporte de la pasada
    """
    global _reconciler

    if reconciler is not None:
        _reconciler = reconciler
    if _reconciler is None:
        raise RuntimeError("Reconciler not initialized")

    logger.info("🔄 Ejecutando reconciliación manual")
    return await _run_reconcile()


def update_reconcile_interval(new_interval_seconds: float) -> bool:
    """
    Actualiza el intervalo; aplica desde la próxima espera.

    Returns:
        bool: True si se actualizó correctamente
    """
    global _interval_seconds

    if new_interval_seconds < 1 or new_interval_seconds > 86400:
        logger.error(f"Intervalo inválido: {new_interval_seconds}")
        return False

    logger.info(f"🔧 Actualizando intervalo de reconciliación a {new_interval_seconds}s")
    _interval_seconds = new_interval_seconds
    return True


def _get_next_run_time() -> Optional[str]:
    if not _scheduler_running or _interval_seconds is None:
        return None
    base = _last_run_at or datetime.now(timezone.utc)
    return (base + timedelta(seconds=_interval_seconds)).isoformat()
