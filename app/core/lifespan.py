"""
Gestión del ciclo de vida de la aplicación FastAPI.

Este módulo maneja los eventos de startup y shutdown de la aplicación:
logging, verificación de configuración, Redis, componentes de
sincronización y reconciliación programada.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.core.config import get_settings
from app.core.dependencies import close_components, get_components, set_components
from app.core.logging_config import setup_logging
from app.core.redis_client import close_redis_client, get_redis_client, test_redis_connection
from app.core.scheduler import start_scheduler, stop_scheduler
from app.services.sync.factory import create_sync_components
from app.utils.distributed_lock import RedisLockBackend, configure_lock_backend, reset_lock_backend

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gestión del ciclo de vida de la aplicación.
    Maneja eventos de startup y shutdown de manera ordenada.

    Args:
        app: Instancia de FastAPI
    """
    settings = get_settings()

    # === STARTUP ===
    try:
        # 1. Configurar logging
        await startup_configure_logging()
        logger.info(f"🚀 Iniciando {settings.APP_NAME} v{settings.APP_VERSION}...")

        # 2. Verificar configuración
        await startup_verify_configuration()

        # 3. Conexiones opcionales (Redis)
        redis_client = await startup_verify_connections()

        # 4. Componentes de sincronización
        await startup_initialize_services(redis_client)

        # 5. Reconciliación programada
        await startup_configure_scheduled_tasks()

        logger.info("🎉 Aplicación iniciada correctamente")

    except Exception as e:
        logger.error(f"❌ Error durante el startup: {e}")
        await cleanup_on_startup_failure()
        raise

    # === YIELD (aplicación corriendo) ===
    yield

    # === SHUTDOWN ===
    logger.info(f"🛑 Cerrando {settings.APP_NAME}...")

    try:
        # 1. Detener tareas programadas
        await stop_scheduler()

        # 2. Finalizar servicios (reintentos en segundo plano, sesión HTTP)
        await shutdown_cleanup_services()

        # 3. Cerrar conexiones
        await close_redis_client()
        reset_lock_backend()

        logger.info("👋 Aplicación cerrada correctamente")

    except Exception as e:
        logger.error(f"❌ Error durante el shutdown: {e}")


# === FUNCIONES DE STARTUP ===


async def startup_configure_logging():
    """Configura el sistema de logging."""
    try:
        setup_logging()
    except Exception as e:
        print(f"Error configurando logging: {e}")
        raise


async def startup_verify_configuration():
    """Verifica que la configuración sea coherente."""
    settings = get_settings()

    if settings.SYNC_CLIENT_MODE == "http" and not settings.CUSTOMER_SERVICE_URL:
        raise ValueError("CUSTOMER_SERVICE_URL es requerido con SYNC_CLIENT_MODE=http")

    if settings.RECONCILE_GRACE_PERIOD_SECONDS < settings.SYNC_REQUEST_TIMEOUT_SECONDS:
        logger.warning(
            "⚠️ RECONCILE_GRACE_PERIOD_SECONDS es menor que SYNC_REQUEST_TIMEOUT_SECONDS: "
            "el reconciliador podría reintentar registros aún en vuelo"
        )

    logger.info(
        f"✅ Configuración verificada - modo cliente: {settings.SYNC_CLIENT_MODE}, "
        f"intentos máximos: {settings.SYNC_MAX_ATTEMPTS}"
    )


async def startup_verify_connections():
    """
    Verifica Redis (opcional) e instala el backend de locks distribuido.

    Returns:
        Cliente Redis o None si no está configurado o no responde
    """
    if not get_settings().REDIS_URL:
        logger.info("Redis no configurado: locks locales al proceso")
        return None

    if await test_redis_connection():
        client = get_redis_client()
        configure_lock_backend(RedisLockBackend(client))
        return client

    logger.warning("⚠️ Redis no disponible (no crítico): locks locales al proceso")
    return None


async def startup_initialize_services(redis_client=None):
    """Crea e inicia los componentes de sincronización."""
    components = create_sync_components(redis_client=redis_client)
    set_components(components)
    await components.start()
    logger.info("✅ Componentes de sincronización inicializados")


async def startup_configure_scheduled_tasks():
    """Inicia la reconciliación periódica si está habilitada."""
    settings = get_settings()
    if not settings.ENABLE_SCHEDULED_RECONCILE:
        logger.info("Reconciliación programada deshabilitada")
        return

    await start_scheduler(get_components().reconciler, settings.RECONCILE_INTERVAL_SECONDS)


async def cleanup_on_startup_failure():
    """Limpia recursos parcialmente inicializados."""
    try:
        await stop_scheduler()
        await shutdown_cleanup_services()
        await close_redis_client()
        reset_lock_backend()
    except Exception as e:
        logger.error(f"Error limpiando recursos tras fallo de startup: {e}")


# === FUNCIONES DE SHUTDOWN ===


async def shutdown_cleanup_services():
    """Cancela reintentos en segundo plano y cierra el cliente de sincronización."""
    await close_components()
