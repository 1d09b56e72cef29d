"""
Dependencias compartidas de FastAPI.

Mantiene la instancia global de SyncComponents (creada en el lifespan o
de forma perezosa) y expone funciones ``get_*`` para ``Depends``. Los
tests las sustituyen con ``app.dependency_overrides``.
"""

import logging
from typing import Optional

from app.db.customer_store import CustomerStore
from app.db.sync_record_store import SyncRecordStore
from app.services.orders.order_service import OrderService
from app.services.sync.factory import SyncComponents, create_sync_components
from app.services.sync.reconciler import Reconciler
from app.utils.notifications import AlertRecorder

logger = logging.getLogger(__name__)

# Global components instance
_components: Optional[SyncComponents] = None


def set_components(components: Optional[SyncComponents]) -> None:
    """Instala (o limpia) la instancia global de componentes."""
    global _components
    _components = components


def get_components() -> SyncComponents:
    """
    Obtiene los componentes globales, creándolos si aún no existen.

    Returns:
        SyncComponents: Componentes de sincronización
    """
    global _components

    if _components is None:
        logger.debug("Sync components not initialized, creating with current settings")
        _components = create_sync_components()

    return _components


def get_order_service() -> OrderService:
    components = get_components()
    return OrderService(components.coordinator, components.customer_store)


def get_customer_store() -> CustomerStore:
    return get_components().customer_store


def get_record_store() -> SyncRecordStore:
    return get_components().record_store


def get_reconciler() -> Reconciler:
    return get_components().reconciler


def get_alert_history() -> AlertRecorder:
    return get_components().alert_recorder


async def close_components() -> None:
    """Cierra y descarta los componentes globales, si existen."""
    global _components

    if _components is None:
        return

    await _components.close()
    _components = None
    logger.info("✅ Componentes de sincronización cerrados")
