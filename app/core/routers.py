"""
Configuración centralizada de routers para la aplicación FastAPI.

Este módulo se encarga de registrar todos los routers de la API,
configurar endpoints base y organizar las rutas de manera estructurada.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from app.api.v1.endpoints.customer_orders import router as customer_orders_router
from app.api.v1.endpoints.customers import router as customers_router
from app.api.v1.endpoints.orders import router as orders_router
from app.api.v1.endpoints.replicas import router as replicas_router
from app.api.v1.endpoints.sync_monitor import router as sync_monitor_router
from app.core.config import get_environment_info, get_settings
from app.core.dependencies import get_components
from app.core.scheduler import get_scheduler_status

logger = logging.getLogger(__name__)


def create_root_endpoints(app: FastAPI) -> None:
    """
    Crea endpoints raíz de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    settings = get_settings()

    @app.get("/", tags=["Root"], summary="API Info")
    async def root():
        """
        Endpoint raíz que proporciona información básica de la API.

        Returns:
            Dict con información de la API
        """
        return {
            "message": settings.APP_NAME,
            "description": "Órdenes autoritativas con réplicas por cliente sincronizadas",
            "version": settings.APP_VERSION,
            "status": "running",
            "documentation": "/docs" if (settings.DEBUG or settings.ENABLE_DOCS) else "disabled",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "endpoints": get_router_info()["base_paths"],
            "environment": get_environment_info() if settings.DEBUG else settings.ENVIRONMENT,
        }


def create_health_endpoints(app: FastAPI) -> None:
    """
    Crea endpoints de health check.

    Args:
        app: Instancia de FastAPI
    """
    settings = get_settings()

    @app.get("/health", tags=["Health"], summary="Health Check")
    async def health_check():
        """
        Health check: la app está sana si los componentes responden.
        Los registros EXHAUSTED se reportan pero no degradan la salud.

        Returns:
            Dict con estado de salud
        """
        try:
            components = get_components()
            records = await components.record_store.count_by_status()

            return {
                "status": "healthy",
                "version": settings.APP_VERSION,
                "environment": settings.ENVIRONMENT,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "services": {
                    "orders_db": components.orders_db.stats(),
                    "customers_db": components.customers_db.stats(),
                    "sync_client": type(components.sync_client).__name__,
                    "scheduler": get_scheduler_status()["running"],
                },
                "sync_records": records,
                "pending_retries": components.coordinator.pending_retries,
            }

        except Exception as e:
            logger.error(f"Error en health check: {e}")
            return JSONResponse(
                status_code=503,
                content={
                    "status": "unhealthy",
                    "error": str(e),
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "version": settings.APP_VERSION,
                },
            )


def configure_api_v1_routers(app: FastAPI) -> None:
    """
    Configura todos los routers de la API v1.

    Args:
        app: Instancia de FastAPI
    """
    logger.info("🔧 Configurando routers de API v1...")

    app.include_router(
        orders_router,
        prefix="/api/v1",
        tags=["Orders"],
        responses={
            404: {"description": "Order not found"},
            409: {"description": "Version conflict or order busy"},
            422: {"description": "Invalid order"},
        },
    )
    logger.info("✅ Router de órdenes configurado")

    app.include_router(
        customer_orders_router,
        prefix="/api/v1",
        tags=["Customer Orders"],
        responses={404: {"description": "Customer or order not found"}},
    )
    logger.info("✅ Router de órdenes por cliente configurado")

    app.include_router(
        customers_router,
        prefix="/api/v1",
        tags=["Customers"],
        responses={404: {"description": "Customer not found"}},
    )
    logger.info("✅ Router de clientes configurado")

    app.include_router(
        replicas_router,
        prefix="/api/v1",
        tags=["Customer Replicas"],
        responses={404: {"description": "Customer not found"}},
    )
    logger.info("✅ Router de réplicas configurado")

    app.include_router(
        sync_monitor_router,
        prefix="/api/v1/sync",
        tags=["Sync Monitoring"],
        responses={
            404: {"description": "Sync record or customer not found"},
            500: {"description": "Monitoring error"},
        },
    )
    logger.info("✅ Router de monitoreo de sincronización configurado")


def configure_all_routers(app: FastAPI) -> None:
    """
    Configura todos los routers de la aplicación.

    Args:
        app: Instancia de FastAPI
    """
    logger.info("🔧 Configurando todos los routers...")

    create_root_endpoints(app)
    create_health_endpoints(app)
    configure_api_v1_routers(app)

    logger.info("✅ Todos los routers configurados correctamente")


def get_router_info() -> Dict[str, Any]:
    """
    Obtiene información sobre los routers configurados.

    Returns:
        Dict con información de routers
    """
    return {
        "api_version": "v1",
        "base_paths": {
            "health": "/health",
            "orders": "/api/v1/orders",
            "customers": "/api/v1/customers",
            "customer_orders": "/api/v1/customers/{customer_id}/orders",
            "replicas": "/api/v1/customerOrders/{customer_id}",
            "sync": "/api/v1/sync",
        },
    }
